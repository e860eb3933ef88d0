"""
The attribute authority: resolves a principal's attributes, filters them
through the release policy and encodes what survives.
"""
import logging
import threading
import time

from saml2.s_utils import sid
from saml2.saml import NAME_FORMAT_URI
from saml2.saml import NAMEID_FORMAT_ENCRYPTED
from saml2.saml import NAMEID_FORMAT_TRANSIENT
from saml2.saml import NAMEID_FORMAT_UNSPECIFIED
from saml2.saml import Attribute
from saml2.saml import AttributeStatement
from saml2.saml import AttributeValue
from saml2.saml import NameID
from saml2.samlp import STATUS_INVALID_NAMEID_POLICY
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER
from saml2.samlp import STATUS_UNKNOWN_PRINCIPAL

from .exception import AttributeRequestError
from .exception import SAMLIdPConfigurationError

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

TRANSIENT_ID_LIFETIME = 8 * 60 * 60
IGNORED_NAME_ID_FORMATS = (NAMEID_FORMAT_UNSPECIFIED, NAMEID_FORMAT_ENCRYPTED)


class SAML2StringAttributeEncoder(object):
    """
    Encodes an attribute as a SAML2 <Attribute> with string values.
    """

    def __init__(self, name, name_format=NAME_FORMAT_URI, friendly_name=None):
        self.name = name
        self.name_format = name_format
        self.friendly_name = friendly_name

    def encode(self, attribute):
        """
        :type attribute: IdPAttribute
        :rtype: saml2.saml.Attribute
        """
        return Attribute(
            name=self.name,
            name_format=self.name_format,
            friendly_name=self.friendly_name,
            attribute_value=[AttributeValue(text=str(value)) for value in attribute.values],
        )


class SAML2NameIDEncoder(object):
    """
    Encodes the first value of an attribute as a NameID of a given format.
    """

    def __init__(self, name_format):
        self.name_format = name_format

    def encode(self, attribute, name_qualifier=None, sp_name_qualifier=None):
        """
        :type attribute: IdPAttribute
        :rtype: saml2.saml.NameID
        """
        if not attribute.values:
            return None
        return NameID(
            format=self.name_format,
            name_qualifier=name_qualifier,
            sp_name_qualifier=sp_name_qualifier,
            text=str(attribute.values[0]),
        )


class IdPAttribute(object):
    """
    A resolved attribute and the ways it can be put on the wire.
    """

    def __init__(self, attribute_id, values=None, encoders=None):
        self.id = attribute_id
        self.values = list(values or [])
        self.encoders = list(encoders or [])

    def encoder_of(self, encoder_type, name_format=None):
        for encoder in self.encoders:
            if not isinstance(encoder, encoder_type):
                continue
            if name_format is None or getattr(encoder, "name_format", None) == name_format:
                return encoder
        return None

    def __repr__(self):
        return "IdPAttribute(id={!r}, values={!r})".format(self.id, self.values)


def _encoders_from_config(config):
    encoders = []
    for encoder_config in config:
        encoder_type = encoder_config.get("type", "string")
        if encoder_type == "string":
            encoders.append(SAML2StringAttributeEncoder(
                encoder_config["name"],
                name_format=encoder_config.get("name_format", NAME_FORMAT_URI),
                friendly_name=encoder_config.get("friendly_name"),
            ))
        elif encoder_type == "name_id":
            encoders.append(SAML2NameIDEncoder(encoder_config["format"]))
        else:
            raise SAMLIdPConfigurationError("Unknown attribute encoder type '{}'".format(encoder_type))
    return encoders


class AttributeResolver(object):
    """
    Base class for attribute resolvers.
    """

    def resolve_attributes(self, context, names=None):
        """
        :type context: samlidp.context.RequestContext
        :type names: list[str] | None
        :rtype: dict[str, IdPAttribute]

        :param context: context with principal and relying party populated
        :param names: limit resolution to these attribute ids
        :return: attribute id -> attribute
        """
        raise NotImplementedError()

    def resolve_principal(self, context, name_id):
        """
        Maps a NameID the IdP issued back to the principal.

        :type context: samlidp.context.RequestContext
        :type name_id: saml2.saml.NameID
        :rtype: str | None
        """
        raise NotImplementedError()


class StaticAttributeResolver(AttributeResolver):
    """
    Resolves attributes from a static table, principal -> attribute values.

    Attribute definitions with ``transient: true`` get a fresh random value
    per principal and relying party, remembered for ``transient_id_lifetime``
    seconds so that the NameID built from it can be mapped back.
    """

    def __init__(self, definitions, principals, transient_id_lifetime=TRANSIENT_ID_LIFETIME, clock=None):
        """
        :type definitions: dict[str, dict]
        :type principals: dict[str, dict[str, list[str]]]
        :type transient_id_lifetime: int

        :param definitions: attribute id -> {"encoders": [...], "transient": bool}
        :param principals: principal -> attribute id -> values
        :param clock: returns the current time in seconds, defaults to time.time
        """
        self.definitions = {
            attr_id: {
                "encoders": _encoders_from_config(definition.get("encoders", [])),
                "transient": bool(definition.get("transient", False)),
            }
            for attr_id, definition in definitions.items()
        }
        self.principals = principals
        self.transient_id_lifetime = transient_id_lifetime
        self.clock = clock or time.time
        # value -> (principal, relying party, issued at), and back
        self._transient_ids = {}
        self._transient_values = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config):
        return cls(config.get("definitions", {}), config.get("principals", {}),
                   int(config.get("transient_id_lifetime", TRANSIENT_ID_LIFETIME)))

    def _purge_transient_ids(self, now):
        expired = [value for value, (_, _, issued) in self._transient_ids.items()
                   if issued + self.transient_id_lifetime <= now]
        for value in expired:
            principal, relying_party_id, _ = self._transient_ids.pop(value)
            self._transient_values.pop((principal, relying_party_id), None)

    def _transient_id(self, principal, relying_party_id):
        now = self.clock()
        with self._lock:
            self._purge_transient_ids(now)
            value = self._transient_values.get((principal, relying_party_id))
            if value is None:
                value = sid()
                self._transient_ids[value] = (principal, relying_party_id, now)
                self._transient_values[(principal, relying_party_id)] = value
            return value

    def resolve_attributes(self, context, names=None):
        principal = context.principal_name
        values = self.principals.get(principal, {})
        resolved = {}
        for attr_id, definition in self.definitions.items():
            if names is not None and attr_id not in names:
                continue
            if definition["transient"] and principal:
                attr_values = [self._transient_id(principal, context.peer_entity_id)]
            else:
                attr_values = values.get(attr_id)
            if not attr_values:
                continue
            resolved[attr_id] = IdPAttribute(attr_id, attr_values, definition["encoders"])

        msg = "Resolved attributes {attrs} for {principal}".format(attrs=sorted(resolved), principal=principal)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return resolved

    def resolve_principal(self, context, name_id):
        with self._lock:
            self._purge_transient_ids(self.clock())
            transient = self._transient_ids.get(name_id.text)
        if transient is not None:
            principal, relying_party_id, _ = transient
            return principal if relying_party_id == context.peer_entity_id else None

        for principal, values in self.principals.items():
            for attr_id, definition in self.definitions.items():
                formats = [e.name_format for e in definition["encoders"] if isinstance(e, SAML2NameIDEncoder)]
                if not formats:
                    continue
                if name_id.format not in (None, NAMEID_FORMAT_UNSPECIFIED) and name_id.format not in formats:
                    continue
                if name_id.text in values.get(attr_id, []):
                    return principal
        return None


class PolicyAttributeFilter(object):
    """
    Release policy: per relying party list of attribute ids that may be
    released. Anything not explicitly allowed is dropped.
    """

    def __init__(self, policy):
        """
        :type policy: dict[str, dict[str, list[str]]]

        :param policy: relying party id (or 'default') -> {"allowed": [...]}
        """
        self.policy = policy or {}

    def allowed_for(self, relying_party_id):
        rp_policy = self.policy.get(relying_party_id, self.policy.get("default", {}))
        return set(rp_policy.get("allowed", []))

    def filter_attributes(self, context, attributes):
        """
        :type context: samlidp.context.RequestContext
        :type attributes: dict[str, IdPAttribute]
        :rtype: dict[str, IdPAttribute]
        """
        allowed = self.allowed_for(context.peer_entity_id)
        released = {attr_id: attr for attr_id, attr in attributes.items() if attr_id in allowed}
        denied = sorted(set(attributes) - set(released))
        if denied:
            msg = "Release policy for {rp} removed {attrs}".format(rp=context.peer_entity_id, attrs=denied)
            logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
            logger.debug(logline)
        return released


class AttributeAuthority(object):
    """
    Front of the attribute subsystem used by the profile handlers.
    """

    def __init__(self, resolver, filter_engine):
        """
        :type resolver: AttributeResolver
        :type filter_engine: PolicyAttributeFilter
        """
        self.resolver = resolver
        self.filter_engine = filter_engine

    def get_principal(self, context, name_id):
        """
        Resolves the principal a NameID refers to.

        :type context: samlidp.context.RequestContext
        :type name_id: saml2.saml.NameID
        :rtype: str
        :raise AttributeRequestError: if no principal matches
        """
        if name_id is None or not name_id.text:
            raise AttributeRequestError("No NameID to resolve principal from", status_code=STATUS_REQUESTER)
        principal = self.resolver.resolve_principal(context, name_id)
        if principal is None:
            raise AttributeRequestError(
                "Unable to resolve principal from NameID {}".format(name_id.text),
                status_code=STATUS_REQUESTER,
                sub_status_code=STATUS_UNKNOWN_PRINCIPAL,
            )
        return principal

    def get_attributes(self, context, requested_names=None, resolved=None):
        """
        Resolves and filters the principal's attributes for the peer.

        :type context: samlidp.context.RequestContext
        :type requested_names: list[str] | None
        :type resolved: dict[str, IdPAttribute] | None
        :rtype: dict[str, IdPAttribute]

        :param context: context with principal and peer populated
        :param requested_names: when given, only these attribute ids are released,
            on top of the release policy
        :param resolved: already resolved attributes, to avoid resolving twice
        :return: the released attributes
        """
        if resolved is None:
            resolved = self.resolver.resolve_attributes(context)
        released = self.filter_engine.filter_attributes(context, resolved)
        if requested_names is not None:
            released = {attr_id: attr for attr_id, attr in released.items() if attr_id in requested_names}
        context.released_attributes = set(released)
        return released

    @staticmethod
    def build_attribute_statement(attributes):
        """
        :type attributes: dict[str, IdPAttribute]
        :rtype: saml2.saml.AttributeStatement | None
        """
        encoded = []
        for attr_id in sorted(attributes):
            encoder = attributes[attr_id].encoder_of(SAML2StringAttributeEncoder)
            if encoder is None:
                logger.debug("Attribute {} has no SAML2 attribute encoder".format(attr_id))
                continue
            encoded.append(encoder.encode(attributes[attr_id]))
        if not encoded:
            return None
        return AttributeStatement(attribute=encoded)

    def build_name_id(self, context, attributes, required_format=None, metadata_formats=None,
                      default_format=NAMEID_FORMAT_TRANSIENT):
        """
        Builds the NameID of the response subject.

        The required format comes from the request's NameIDPolicy; the
        unspecified and encrypted formats do not constrain the choice. Without
        a required format the SP's metadata formats are tried, then the
        profile default, then any format an attribute can be encoded as.

        :type context: samlidp.context.RequestContext
        :type attributes: dict[str, IdPAttribute]
        :type required_format: str | None
        :type metadata_formats: list[str] | None
        :type default_format: str
        :rtype: saml2.saml.NameID | None
        :raise AttributeRequestError: if a required format can not be produced
        """
        if required_format in IGNORED_NAME_ID_FORMATS:
            required_format = None

        if required_format:
            candidate_formats = [required_format]
        else:
            candidate_formats = list(metadata_formats or []) or [default_format]

        qualifiers = {
            "name_qualifier": context.local_entity_id,
            "sp_name_qualifier": context.peer_entity_id,
        }
        for name_format in candidate_formats:
            for attr_id in sorted(attributes):
                encoder = attributes[attr_id].encoder_of(SAML2NameIDEncoder, name_format)
                if encoder is not None:
                    return encoder.encode(attributes[attr_id], **qualifiers)

        if required_format:
            raise AttributeRequestError(
                "No attribute can be encoded as a NameID of format {}".format(required_format),
                status_code=STATUS_RESPONDER,
                sub_status_code=STATUS_INVALID_NAMEID_POLICY,
            )

        for attr_id in sorted(attributes):
            encoder = attributes[attr_id].encoder_of(SAML2NameIDEncoder)
            if encoder is not None:
                return encoder.encode(attributes[attr_id], **qualifiers)

        msg = "No NameID could be built for {}".format(context.principal_name)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.warning(logline)
        return None
