"""
This module contains methods to load and verify the configuration of the IdP.
"""
import logging
import os

from samlidp.exception import SAMLIdPConfigurationError
from samlidp.yaml import YAMLError
from samlidp.yaml import load_file as yaml_load_file


logger = logging.getLogger(__name__)

ENV_PREFIX = "SAMLIDP_"


class IdPConfig(object):
    """
    Configuration of the IdP. Verifies that the given config holds all the
    necessary parameters.
    """
    sensitive_dict_keys = ["STATE_ENCRYPTION_KEY"]
    mandatory_dict_keys = ["BASE", "ENTITY_ID", "COOKIE_STATE_NAME", "RELYING_PARTIES", "METADATA"]
    # sections that may also be given as the path of a YAML file
    section_keys = ["RELYING_PARTIES", "METADATA", "ATTRIBUTES"]

    def __init__(self, config):
        """
        Reads a given config and builds the IdPConfig.

        :type config: str | dict
        :rtype: samlidp.idp_config.IdPConfig

        :param config: Can be a file path or a dictionary
        :return: A verified IdPConfig
        """
        self._config = self._load(config)

        for key in IdPConfig.sensitive_dict_keys:
            val = os.environ.get("{prefix}{key}".format(prefix=ENV_PREFIX, key=key))
            if val:
                self._config[key] = val

        self._verify_dict(self._config)

        for key in IdPConfig.section_keys:
            if key not in self._config:
                continue
            section = self._load(self._config[key])
            if section is None:
                raise SAMLIdPConfigurationError("Failed to load configuration section '{}'".format(key))
            self._config[key] = section

    def _load(self, config):
        for parser in (self._load_dict, self._load_yaml):
            loaded = parser(config)
            if loaded is not None:
                return loaded
        return None

    def _verify_dict(self, conf):
        """
        Check that the configuration contains all necessary keys.

        :type conf: dict
        :rtype: None
        :raise SAMLIdPConfigurationError: if the configuration is incorrect
        """
        if not conf:
            raise SAMLIdPConfigurationError("Missing configuration or unknown format")

        for key in IdPConfig.mandatory_dict_keys:
            if key not in conf:
                raise SAMLIdPConfigurationError("Missing key '{}' in config".format(key))

        for key in IdPConfig.sensitive_dict_keys:
            if key not in conf:
                raise SAMLIdPConfigurationError("Missing key '{key}' from config and ENVIRONMENT ({prefix}{key})".format(
                    key=key, prefix=ENV_PREFIX))

    def __getitem__(self, item):
        return self._config[item]

    def __setitem__(self, key, value):
        self._config[key] = value

    def __contains__(self, key):
        return key in self._config

    def get(self, item, default=None):
        return self._config.get(item, default)

    def _load_dict(self, config):
        if isinstance(config, dict):
            return config

        return None

    def _load_yaml(self, config_file):
        """
        Load config from yaml file

        :type config_file: str
        :rtype: dict | None
        """
        if not isinstance(config_file, str):
            return None
        try:
            return yaml_load_file(config_file)
        except YAMLError as exc:
            logger.error("Could not parse config as YAML: {}".format(exc))
            if hasattr(exc, "problem_mark"):
                mark = exc.problem_mark
                logger.error("Error position: ({line}:{column})".format(line=mark.line + 1, column=mark.column + 1))
        except IOError as e:
            logger.error("Could not open config file: {}".format(e))

        return None
