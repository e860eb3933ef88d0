"""
Relying party metadata as seen by the protocol engine.

Two providers are available: an in-memory provider built from plain
configuration and an adapter over a pysaml2 metadata store, which loads local
files, remote aggregates and MDQ services.
"""
import logging

from saml2.config import IdPConfig as PySAML2IdPConfig

from .exception import SAMLIdPConfigurationError


logger = logging.getLogger(__name__)

KEY_USE_SIGNING = "signing"
KEY_USE_ENCRYPTION = "encryption"


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return bool(value)


class Endpoint(object):
    """
    A (location, binding) pair a response can be delivered to.
    """

    def __init__(self, location, binding, index=None, is_default=False, response_location=None):
        """
        :type location: str
        :type binding: str
        :type index: int | None
        :type is_default: bool
        :type response_location: str | None
        """
        self.location = location
        self.binding = binding
        self.index = int(index) if index is not None else None
        self.is_default = _as_bool(is_default)
        self.response_location = response_location

    @classmethod
    def from_dict(cls, data):
        return cls(
            location=data["location"],
            binding=data["binding"],
            index=data.get("index"),
            is_default=data.get("is_default", False),
            response_location=data.get("response_location"),
        )

    def __eq__(self, other):
        if not isinstance(other, Endpoint):
            return NotImplemented
        return (self.location, self.binding, self.index) == (other.location, other.binding, other.index)

    def __hash__(self):
        return hash((self.location, self.binding, self.index))

    def __repr__(self):
        return "Endpoint(location={!r}, binding={!r}, index={!r}, is_default={!r})".format(
            self.location, self.binding, self.index, self.is_default
        )


class EntityMetadata(object):
    """
    The SP role of a peer entity.
    """

    def __init__(self, entity_id, assertion_consumer_services=None, name_id_formats=None,
                 want_assertions_signed=False, signing_certificates=None, encryption_certificates=None,
                 display_name=None):
        self.entity_id = entity_id
        self.assertion_consumer_services = list(assertion_consumer_services or [])
        self.name_id_formats = list(name_id_formats or [])
        self.want_assertions_signed = _as_bool(want_assertions_signed)
        self.signing_certificates = list(signing_certificates or [])
        self.encryption_certificates = list(encryption_certificates or [])
        self.display_name = display_name

    @classmethod
    def from_dict(cls, entity_id, data):
        """
        :type entity_id: str
        :type data: dict[str, Any]
        :rtype: EntityMetadata
        """
        return cls(
            entity_id,
            assertion_consumer_services=[
                Endpoint.from_dict(acs) for acs in data.get("assertion_consumer_service", [])
            ],
            name_id_formats=data.get("name_id_format", []),
            want_assertions_signed=data.get("want_assertions_signed", False),
            signing_certificates=data.get("signing_certificates", []),
            encryption_certificates=data.get("encryption_certificates", []),
            display_name=data.get("display_name"),
        )

    def default_endpoint(self, supported_bindings):
        """
        Returns the default assertion consumer service with a supported
        binding, if any.

        :type supported_bindings: list[str]
        :rtype: Endpoint | None
        """
        for endpoint in self.assertion_consumer_services:
            if endpoint.is_default and endpoint.binding in supported_bindings:
                return endpoint
        return None


class MetadataProvider(object):
    """
    Base class for metadata providers.
    """

    def get_entity(self, entity_id):
        """
        :type entity_id: str
        :rtype: EntityMetadata | None

        :param entity_id: entity id of the peer
        :return: the peer's SP role, or None if the entity is unknown
        """
        raise NotImplementedError()


class InMemoryMetadataProvider(MetadataProvider):
    """
    Metadata held in a dict, keyed by entity id.
    """

    def __init__(self, entities=None):
        self.entities = {}
        for entity in entities or []:
            self.entities[entity.entity_id] = entity

    @classmethod
    def from_config(cls, config):
        """
        :type config: dict[str, dict[str, Any]]
        :rtype: InMemoryMetadataProvider

        :param config: entity id -> SP role description
        """
        return cls([EntityMetadata.from_dict(entity_id, data) for entity_id, data in config.items()])

    def add(self, entity):
        self.entities[entity.entity_id] = entity

    def get_entity(self, entity_id):
        return self.entities.get(entity_id)


class PySAML2MetadataProvider(MetadataProvider):
    """
    Adapter over a pysaml2 metadata store.
    """

    def __init__(self, metadata_store):
        """
        :type metadata_store: saml2.mdstore.MetadataStore
        """
        self.metadata_store = metadata_store

    @classmethod
    def from_config(cls, entity_id, metadata_config):
        """
        Loads a pysaml2 metadata store from its usual configuration block,
        e.g. ``{"local": ["sp.xml"], "remote": [{"url": ...}]}``.

        :type entity_id: str
        :type metadata_config: dict[str, Any]
        """
        conf = PySAML2IdPConfig()
        try:
            conf.load({"entityid": entity_id, "metadata": metadata_config})
        except Exception as e:
            raise SAMLIdPConfigurationError("Could not load metadata: {}".format(e)) from e
        return cls(conf.metadata)

    @staticmethod
    def _certificates(descriptor, use):
        certs = []
        for key_descriptor in descriptor.get("key_descriptor", []):
            key_use = key_descriptor.get("use")
            if key_use not in (None, use):
                continue
            for x509_data in key_descriptor.get("key_info", {}).get("x509_data", []):
                cert = x509_data.get("x509_certificate", {}).get("text")
                if cert:
                    certs.append("".join(cert.split()))
        return certs

    def get_entity(self, entity_id):
        try:
            entity = self.metadata_store[entity_id]
        except KeyError:
            logger.debug("Entity {} not found in metadata".format(entity_id))
            return None

        descriptors = entity.get("spsso_descriptor", [])
        if not descriptors:
            logger.debug("Entity {} has no SP role".format(entity_id))
            return None

        descriptor = descriptors[0]
        return EntityMetadata(
            entity_id,
            assertion_consumer_services=[
                Endpoint.from_dict(acs) for acs in descriptor.get("assertion_consumer_service", [])
            ],
            name_id_formats=[fmt["text"] for fmt in descriptor.get("name_id_format", []) if fmt.get("text")],
            want_assertions_signed=descriptor.get("want_assertions_signed", False),
            signing_certificates=self._certificates(descriptor, KEY_USE_SIGNING),
            encryption_certificates=self._certificates(descriptor, KEY_USE_ENCRYPTION),
        )
