"""
YAML loading for configuration files.

Two tags read values from the environment, so that secrets need not be kept
in the file itself:

``!ENV NAME``
    the value of the environment variable NAME
``!ENVFILE NAME``
    the content of the file the environment variable NAME points at
"""
import os

from yaml import SafeLoader
from yaml import YAMLError
from yaml import safe_load as load

TAG_ENV = "!ENV"
TAG_ENVFILE = "!ENVFILE"


def _env_value(loader, node):
    variable = loader.construct_scalar(node)
    value = os.environ.get(variable)
    if value is None:
        raise YAMLError("Environment variable {} referenced at {} is not set".format(
            variable, node.start_mark))
    return value


def _env_file_value(loader, node):
    variable = loader.construct_scalar(node)
    path = os.environ.get(variable)
    try:
        with open(path, "r") as fd:
            return fd.read()
    except (TypeError, IOError) as e:
        raise YAMLError("Cannot read file '{}' named by environment variable {}".format(
            path, variable)) from e


SafeLoader.add_constructor(TAG_ENV, _env_value)
SafeLoader.add_constructor(TAG_ENVFILE, _env_file_value)


def load_file(path):
    """
    :type path: str
    :rtype: Any
    :raise YAMLError: if the file is not valid YAML
    :raise IOError: if the file can not be read
    """
    with open(os.path.abspath(path)) as f:
        return load(f.read())


__all__ = ["YAMLError", "load", "load_file", "TAG_ENV", "TAG_ENVFILE"]
