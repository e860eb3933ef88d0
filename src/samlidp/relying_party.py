"""
Per relying party configuration: which profiles are enabled for an SP and
with which policy.
"""
import logging

from saml2.saml import NAMEID_FORMAT_TRANSIENT

from .context import ProfileKind
from .crypto_policy import CryptoOperationRequirementLevel
from .exception import SAMLIdPConfigurationError
from .security import Credential


logger = logging.getLogger(__name__)

DEFAULT_RELYING_PARTY = "default"


class ProfileConfiguration(object):
    """
    Policy of one profile for one relying party.
    """

    def __init__(self, profile, assertion_lifetime=300, audiences=None, proxy_count=None,
                 proxy_audiences=None, sign_assertions=None, encrypt_assertions=None,
                 encrypt_name_ids=None, default_name_id_format=NAMEID_FORMAT_TRANSIENT,
                 include_attribute_statement=True, signing_credential=None,
                 max_sp_session_lifetime=0):
        """
        :type profile: samlidp.context.ProfileKind
        :type assertion_lifetime: int
        :type audiences: list[str]
        :type proxy_count: int | None
        :type proxy_audiences: list[str]
        :type sign_assertions: CryptoOperationRequirementLevel
        :type encrypt_assertions: CryptoOperationRequirementLevel
        :type encrypt_name_ids: CryptoOperationRequirementLevel
        :type default_name_id_format: str
        :type include_attribute_statement: bool
        :type signing_credential: samlidp.security.Credential | None
        :type max_sp_session_lifetime: int
        """
        if assertion_lifetime < 0:
            raise SAMLIdPConfigurationError("assertion_lifetime must not be negative")
        self.profile = profile
        self.assertion_lifetime = assertion_lifetime
        self.audiences = list(audiences or [])
        self.proxy_count = proxy_count
        self.proxy_audiences = list(proxy_audiences or [])
        self.sign_assertions = CryptoOperationRequirementLevel.parse(sign_assertions)
        self.encrypt_assertions = CryptoOperationRequirementLevel.parse(
            encrypt_assertions, CryptoOperationRequirementLevel.NEVER)
        self.encrypt_name_ids = CryptoOperationRequirementLevel.parse(
            encrypt_name_ids, CryptoOperationRequirementLevel.NEVER)
        self.default_name_id_format = default_name_id_format
        self.include_attribute_statement = include_attribute_statement
        self.signing_credential = signing_credential
        self.max_sp_session_lifetime = max_sp_session_lifetime

    @classmethod
    def from_config(cls, profile, config):
        config = dict(config or {})
        config["signing_credential"] = Credential.from_config(config.get("signing_credential"))
        return cls(profile, **config)


class RelyingPartyConfiguration(object):
    """
    Everything the IdP knows about how to talk to one relying party.
    """

    def __init__(self, relying_party_id, provider_id, profiles=None, default_signing_credential=None,
                 default_authn_method=None):
        """
        :type relying_party_id: str
        :type provider_id: str
        :type profiles: dict[samlidp.context.ProfileKind, ProfileConfiguration]
        :type default_signing_credential: samlidp.security.Credential | None
        :type default_authn_method: str | None

        :param relying_party_id: entity id of the SP, or 'default'
        :param provider_id: entity id the IdP uses towards this SP
        :param profiles: enabled profiles
        :param default_signing_credential: used when a profile has none
        :param default_authn_method: used when the SP requests none
        """
        self.relying_party_id = relying_party_id
        self.provider_id = provider_id
        self.profiles = dict(profiles or {})
        self.default_signing_credential = default_signing_credential
        self.default_authn_method = default_authn_method

    def profile_configuration(self, profile):
        """
        :type profile: samlidp.context.ProfileKind
        :rtype: ProfileConfiguration | None
        """
        return self.profiles.get(profile)

    @classmethod
    def from_config(cls, relying_party_id, config, default_provider_id):
        profiles = {}
        for key, profile_config in (config.get("profiles") or {}).items():
            try:
                kind = ProfileKind(key)
            except ValueError as e:
                raise SAMLIdPConfigurationError(
                    "Unknown profile '{}' for relying party '{}'".format(key, relying_party_id)) from e
            profiles[kind] = ProfileConfiguration.from_config(kind, profile_config)

        return cls(
            relying_party_id,
            config.get("provider_id", default_provider_id),
            profiles=profiles,
            default_signing_credential=Credential.from_config(
                config.get("signing_credential"), entity_id=config.get("provider_id", default_provider_id)),
            default_authn_method=config.get("default_authn_method"),
        )


class RelyingPartyConfigurationManager(object):
    """
    Looks up the configuration of a relying party, falling back to the
    default configuration for SPs without their own entry.
    """

    def __init__(self, default, relying_parties=None):
        """
        :type default: RelyingPartyConfiguration
        :type relying_parties: dict[str, RelyingPartyConfiguration]
        """
        self.default = default
        self.relying_parties = dict(relying_parties or {})

    def get(self, relying_party_id):
        """
        :type relying_party_id: str | None
        :rtype: RelyingPartyConfiguration
        """
        if relying_party_id and relying_party_id in self.relying_parties:
            return self.relying_parties[relying_party_id]
        logger.debug("No configuration for relying party {}, using default".format(relying_party_id))
        return self.default

    @classmethod
    def from_config(cls, config, provider_id):
        """
        :type config: dict[str, dict]
        :type provider_id: str

        :param config: relying party id -> configuration, must hold 'default'
        :param provider_id: the IdP's entity id
        """
        if DEFAULT_RELYING_PARTY not in config:
            raise SAMLIdPConfigurationError("Missing '{}' relying party configuration".format(
                DEFAULT_RELYING_PARTY))
        parties = {
            rp_id: RelyingPartyConfiguration.from_config(rp_id, rp_config, provider_id)
            for rp_id, rp_config in config.items()
        }
        default = parties.pop(DEFAULT_RELYING_PARTY)
        return cls(default, parties)
