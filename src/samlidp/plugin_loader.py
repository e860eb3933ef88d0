"""
Builds the collaborators and handlers of the IdP from its configuration.

Every collaborator can be replaced by naming a class by its dotted path,
``{"module": "package.module.Class", "config": {...}}``.
"""
import json
import logging
from pydoc import locate

from .assertion import AssertionBuilder
from .attribute_authority import AttributeAuthority
from .attribute_authority import AttributeResolver
from .attribute_authority import PolicyAttributeFilter
from .attribute_authority import StaticAttributeResolver
from .audit import AuditLogger
from .authn import RemoteUserLoginHandler
from .codec import BindingCodecRegistry
from .crypto_policy import CryptoPolicyEngine
from .endpoint_selector import EndpointSelector
from .exception import SAMLIdPConfigurationError
from .metadata import InMemoryMetadataProvider
from .metadata import MetadataProvider
from .metadata import PySAML2MetadataProvider
from .profiles.artifact_resolution import ArtifactResolutionProfileHandler
from .profiles.artifact_resolution import SAML1ArtifactResolutionProfileHandler
from .profiles.attribute_query import AttributeQueryProfileHandler
from .profiles.base import ProfileServices
from .profiles.ecp import ECPProfileHandler
from .profiles.metadata import SAMLMetadataProfileHandler
from .profiles.sso import SSOProfileHandler
from .profiles.status import StatusHandler
from .profiles.unsolicited import ShibbolethSSOProfileHandler
from .profiles.unsolicited import UnsolicitedSSOProfileHandler
from .relying_party import RelyingPartyConfigurationManager
from .security import Encrypter
from .security import Signer
from .security import XmlSecEncrypter
from .security import XmlSecSigner
from .session_storage import SessionStorage
from .session_storage import Storage
from .store import ArtifactStore
from .store import ArtifactStoreInMemory


logger = logging.getLogger(__name__)

DEFAULT_HANDLERS = [
    SSOProfileHandler,
    UnsolicitedSSOProfileHandler,
    ShibbolethSSOProfileHandler,
    ECPProfileHandler,
    AttributeQueryProfileHandler,
    ArtifactResolutionProfileHandler,
    SAML1ArtifactResolutionProfileHandler,
    RemoteUserLoginHandler,
    StatusHandler,
    SAMLMetadataProfileHandler,
]


def _locate_class(path, base_class):
    cls = locate(path)
    if cls is None:
        raise SAMLIdPConfigurationError("Can't find module '{}'".format(path))
    if base_class is not None and not (isinstance(cls, type) and issubclass(cls, base_class)):
        raise SAMLIdPConfigurationError("'{}' is not a {}".format(path, base_class.__name__))
    return cls


def load_component(plugin_config, base_class, default_class):
    """
    Instantiates a collaborator with its config.

    :type plugin_config: dict[str, Any] | None
    :type base_class: type
    :type default_class: type

    :param plugin_config: ``{"module": dotted path, "config": {...}}``, either key optional
    :param base_class: the class the collaborator must derive from
    :param default_class: used when no module is named
    :return: the instance
    """
    plugin_config = plugin_config or {}
    cls = default_class
    if "module" in plugin_config:
        cls = _locate_class(plugin_config["module"], base_class)
    return cls(plugin_config.get("config") or {})


def load_metadata_provider(config):
    """
    ``inline`` entities are served from memory; ``local``, ``remote`` and
    ``mdq`` sources are loaded by pysaml2.

    :type config: samlidp.idp_config.IdPConfig
    :rtype: samlidp.metadata.MetadataProvider
    """
    metadata_config = dict(config["METADATA"])
    if "module" in metadata_config:
        cls = _locate_class(metadata_config["module"], MetadataProvider)
        return cls.from_config(metadata_config.get("config") or {})

    inline = metadata_config.pop("inline", None)
    if metadata_config:
        return PySAML2MetadataProvider.from_config(config["ENTITY_ID"], metadata_config)
    return InMemoryMetadataProvider.from_config(inline or {})


def load_attribute_authority(config):
    """
    :type config: samlidp.idp_config.IdPConfig
    :rtype: samlidp.attribute_authority.AttributeAuthority
    """
    attributes_config = config.get("ATTRIBUTES") or {}
    resolver_config = attributes_config.get("resolver") or {}
    if "module" in resolver_config:
        cls = _locate_class(resolver_config["module"], AttributeResolver)
        resolver = cls.from_config(resolver_config.get("config") or {})
    else:
        resolver = StaticAttributeResolver.from_config(resolver_config.get("config") or resolver_config)
    return AttributeAuthority(resolver, PolicyAttributeFilter(attributes_config.get("release_policy")))


def _load_crypto_component(plugin_config, base_class, default_class):
    plugin_config = plugin_config or {}
    cls = default_class
    if "module" in plugin_config:
        cls = _locate_class(plugin_config["module"], base_class)
    return cls(**(plugin_config.get("config") or {}))


def load_crypto_policy(config):
    security_config = config.get("SECURITY") or {}
    signer = _load_crypto_component(security_config.get("signer"), Signer, XmlSecSigner)
    encrypter = _load_crypto_component(security_config.get("encrypter"), Encrypter, XmlSecEncrypter)
    return CryptoPolicyEngine(signer, encrypter)


def load_services(config):
    """
    Builds the collaborators shared by the handlers.

    :type config: samlidp.idp_config.IdPConfig
    :rtype: samlidp.profiles.base.ProfileServices
    """
    artifact_store = load_component(config.get("ARTIFACT_STORE"), ArtifactStore, ArtifactStoreInMemory)
    session_storage = load_component(config.get("SESSION_STORAGE"), Storage, SessionStorage)
    codecs = BindingCodecRegistry.default(artifact_store, int(config.get("ARTIFACT_LIFETIME", 60)))

    services = ProfileServices(
        base_url=config["BASE"],
        entity_id=config["ENTITY_ID"],
        relying_parties=RelyingPartyConfigurationManager.from_config(config["RELYING_PARTIES"],
                                                                     config["ENTITY_ID"]),
        metadata_provider=load_metadata_provider(config),
        codecs=codecs,
        endpoint_selector=EndpointSelector(codecs.outbound_bindings),
        crypto_policy=load_crypto_policy(config),
        attribute_authority=load_attribute_authority(config),
        assertion_builder=AssertionBuilder(),
        session_storage=session_storage,
        artifact_store=artifact_store,
        audit=AuditLogger(),
        authn_url=config.get("AUTHN_URL"),
    )
    logger.info("Loaded services for {}".format(services.entity_id))
    return services


def load_handlers(config, services):
    """
    Instantiates the handlers named in ``PROFILE_HANDLERS``, or all the
    built in handlers when the key is absent.

    :type config: samlidp.idp_config.IdPConfig
    :type services: samlidp.profiles.base.ProfileServices
    :rtype: list[samlidp.profiles.base.ProfileHandler]
    """
    handler_configs = config.get("PROFILE_HANDLERS")
    if handler_configs is None:
        return [cls(services) for cls in DEFAULT_HANDLERS]

    handlers = []
    for handler_config in handler_configs:
        if "module" not in handler_config:
            raise SAMLIdPConfigurationError("Configuration error in {}: missing 'module'".format(
                json.dumps(handler_config)))
        cls = _locate_class(handler_config["module"], None)
        kwargs = {"config": handler_config.get("config")}
        if handler_config.get("name"):
            kwargs["name"] = handler_config["name"]
        handlers.append(cls(services, **kwargs))
    logger.info("Setup handlers: {}".format([handler.name for handler in handlers]))
    return handlers
