"""
Base class of the profile handlers and the collaborators they share.
"""
import logging

from saml2 import BINDING_PAOS
from saml2 import BINDING_SOAP
from saml2.samlp import STATUS_REQUEST_VERSION_TOO_HIGH
from saml2.samlp import STATUS_REQUEST_VERSION_TOO_LOW
from saml2.samlp import STATUS_VERSION_MISMATCH
from saml2.samlp import Response as SAMLResponse

from ..codec import soap_fault
from ..context import ReadyResponse
from ..context import Suspended
from ..exception import MessageDecodingError
from ..exception import ProfileError
from ..exception import SAMLIdPError
from ..exception import UnknownBindingError
from ..response import BadRequest
from ..status import status_from_error

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

SAML2_VERSIONS = ((2, 0),)


class ProfileServices(object):
    """
    The collaborators a profile handler works with. One instance is shared
    by all handlers of an IdP; none of them hold per-request state.
    """

    def __init__(self, base_url, entity_id, relying_parties, metadata_provider, codecs,
                 endpoint_selector, crypto_policy, attribute_authority, assertion_builder,
                 session_storage, artifact_store=None, audit=None, authn_url=None):
        """
        :type base_url: str
        :type entity_id: str
        :type relying_parties: samlidp.relying_party.RelyingPartyConfigurationManager
        :type metadata_provider: samlidp.metadata.MetadataProvider
        :type codecs: samlidp.codec.BindingCodecRegistry
        :type endpoint_selector: samlidp.endpoint_selector.EndpointSelector
        :type crypto_policy: samlidp.crypto_policy.CryptoPolicyEngine
        :type attribute_authority: samlidp.attribute_authority.AttributeAuthority
        :type assertion_builder: samlidp.assertion.AssertionBuilder
        :type session_storage: samlidp.session_storage.SessionStorage
        :type artifact_store: samlidp.store.ArtifactStore
        :type audit: samlidp.audit.AuditLogger
        :type authn_url: str

        :param base_url: public base url of the IdP
        :param entity_id: entity id of the IdP
        :param authn_url: where users are sent to authenticate
        """
        self.base_url = base_url.rstrip("/")
        self.entity_id = entity_id
        self.relying_parties = relying_parties
        self.metadata_provider = metadata_provider
        self.codecs = codecs
        self.endpoint_selector = endpoint_selector
        self.crypto_policy = crypto_policy
        self.attribute_authority = attribute_authority
        self.assertion_builder = assertion_builder
        self.session_storage = session_storage
        self.artifact_store = artifact_store
        self.audit = audit
        self.authn_url = authn_url or "{}/authn/RemoteUser".format(self.base_url)


def issuer_of(message):
    """
    :type message: saml2.samlp.RequestAbstractType
    :rtype: str
    :raise MessageDecodingError: if the message names no issuer
    """
    issuer = message.issuer.text.strip() if message.issuer is not None and message.issuer.text else None
    if not issuer:
        raise MessageDecodingError("{} has no Issuer".format(type(message).__name__))
    return issuer


def check_saml_version(context, supported=SAML2_VERSIONS):
    """
    :type context: samlidp.context.RequestContext
    :type supported: tuple[(int, int)]
    :raise ProfileError: VersionMismatch for a version not in ``supported``
    """
    version = context.saml_version
    try:
        parsed = tuple(int(part) for part in version.split("."))
    except (AttributeError, ValueError) as e:
        raise ProfileError("Missing or malformed SAML version '{}'".format(version),
                           status_code=STATUS_VERSION_MISMATCH) from e
    if parsed in supported:
        return
    if parsed < min(supported):
        raise ProfileError("SAML version {} is not supported".format(version),
                           status_code=STATUS_VERSION_MISMATCH,
                           sub_status_code=STATUS_REQUEST_VERSION_TOO_LOW)
    raise ProfileError("SAML version {} is not supported".format(version),
                       status_code=STATUS_VERSION_MISMATCH,
                       sub_status_code=STATUS_REQUEST_VERSION_TOO_HIGH)


class ProfileHandler(object):
    """
    A SAML profile. Subclasses implement the three pipeline stages:

    decode
        read the inbound message off the transport, returns a
        ``DecodedRequest``
    populate_context
        look up the peer, its metadata and the applicable configuration
    build_response
        run the profile and return a ``ReadyResponse`` or ``Suspended``

    ``handle`` drives the stages, maps failures to a Status-bearing
    response and encodes the result.
    """
    kind = None
    message_class = None
    response_class = SAMLResponse
    saml_versions = SAML2_VERSIONS

    def __init__(self, services, config=None, name=None):
        """
        :type services: ProfileServices
        :type config: dict[str, Any]
        :type name: str

        :param services: shared collaborators
        :param config: handler configuration, holds the endpoint paths
        :param name: handler name, used in log lines
        """
        self.services = services
        self.config = config or {}
        self.name = name or type(self).__name__

    def register_endpoints(self):
        """
        :rtype: list[(str, (samlidp.context.RequestContext) -> samlidp.response.Response)]
        :return: url path regex -> endpoint function
        """
        raise NotImplementedError()

    def decode(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.context.DecodedRequest
        """
        raise NotImplementedError()

    def populate_context(self, context):
        """
        Fills in the parties and configuration of the request. The decoded
        request must have been applied to the context.

        :type context: samlidp.context.RequestContext
        :raise ProfileError: if the profile is not enabled for the peer
        """
        services = self.services
        context.profile = self.kind
        context.metadata_provider = services.metadata_provider
        context.peer_metadata = context.require_metadata_provider().get_entity(context.require_inbound_issuer())
        context.relying_party_config = services.relying_parties.get(context.peer_entity_id)
        context.local_entity_id = context.relying_party_config.provider_id or services.entity_id
        context.profile_config = context.relying_party_config.profile_configuration(self.kind)

        if context.peer_metadata is None:
            msg = "No metadata for relying party {}".format(context.peer_entity_id)
            logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
            logger.info(logline)

        check_saml_version(context, self.saml_versions)
        if context.profile_config is None:
            raise ProfileError("Profile {} is not configured for relying party {}".format(
                self.kind.value, context.peer_entity_id))

    def select_endpoint(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.metadata.Endpoint
        """
        return self.services.endpoint_selector.select(context)

    def build_response(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.context.ReadyResponse | samlidp.context.Suspended
        """
        raise NotImplementedError()

    def handle(self, context):
        """
        Runs the profile for one request.

        :type context: samlidp.context.RequestContext
        :rtype: samlidp.response.Response
        """
        try:
            decoded = self.decode(context)
        except (MessageDecodingError, UnknownBindingError) as e:
            return self.undeliverable(context, e)
        decoded.apply(context)
        return self.run_stages(context)

    def run_stages(self, context):
        try:
            self.populate_context(context)
            result = self.build_response(context)
        except SAMLIdPError as e:
            result = self.error_response(context, e)
            if result is None:
                return self.undeliverable(context, e)

        if isinstance(result, Suspended):
            return result.response
        return self.encode(context, result)

    def error_response(self, context, error):
        """
        Builds a response carrying the Status the error maps to, or returns
        None when no endpoint can be established to send it to.

        :type context: samlidp.context.RequestContext
        :type error: Exception
        :rtype: samlidp.context.ReadyResponse | None
        """
        context.failure_status = status_from_error(error)
        msg = "{name} failed for {peer}: {error}".format(name=self.name, peer=context.peer_entity_id, error=error)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)

        if context.peer_entity_id is None:
            return None
        if context.peer_endpoint is None:
            try:
                context.peer_endpoint = self.select_endpoint(context)
            except ProfileError as e:
                msg = "No endpoint to return the error to: {}".format(e)
                logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
                logger.warning(logline)
                return None

        message = self.status_response(context, context.failure_status)
        return ReadyResponse(message, context.peer_endpoint, context.relay_state)

    def status_response(self, context, status):
        """
        A response of this profile that carries only a Status.

        :type context: samlidp.context.RequestContext
        :type status: saml2.samlp.Status
        """
        return self.services.assertion_builder.build_response(
            context.local_entity_id or self.services.entity_id,
            status,
            in_response_to=context.inbound_message_id,
            destination=context.peer_endpoint.location,
            response_class=self.response_class,
        )

    def undeliverable(self, context, error):
        """
        Generic fault for requests that can not be answered in SAML.

        :type context: samlidp.context.RequestContext
        :type error: Exception
        :rtype: samlidp.response.Response
        """
        if context.failure_status is None:
            context.failure_status = status_from_error(error)
        msg = "Unable to answer {name} request: {error}".format(name=self.name, error=error)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.warning(logline)

        if context.inbound_binding in (BINDING_SOAP, BINDING_PAOS):
            return soap_fault("Error processing request")
        return BadRequest("Error processing request", content="text/plain")

    def encode(self, context, ready):
        """
        Encodes the response for its endpoint. When a success response can't
        be serialized, a Responder error response goes out in its place.

        :type context: samlidp.context.RequestContext
        :type ready: samlidp.context.ReadyResponse
        :rtype: samlidp.response.Response
        """
        try:
            response = self._encode(context, ready)
        except Exception as e:
            msg = "Could not encode {type} {id}: {error}".format(
                type=type(ready.message).__name__, id=ready.message.id, error=e)
            logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
            logger.exception(logline)
            if context.failure_status is not None:
                return self.undeliverable(context, e)

            fallback = self.error_response(context, e)
            if fallback is None:
                return self.undeliverable(context, e)
            try:
                response = self._encode(context, fallback)
            except Exception as fallback_error:
                logger.exception(str(fallback_error))
                return self.undeliverable(context, fallback_error)

        if self.services.audit is not None:
            self.services.audit.record(context)
        return response

    def _encode(self, context, ready):
        encoder = self.services.codecs.encoder(ready.endpoint.binding)
        context.outbound_binding = ready.endpoint.binding
        context.outbound_message = ready.message
        context.outbound_message_id = ready.message.id
        response = encoder.encode(context, ready.message, ready.endpoint, ready.relay_state)

        msg = "Sending {type} {id} to {peer} over {binding}".format(
            type=type(ready.message).__name__, id=ready.message.id, peer=context.peer_entity_id,
            binding=ready.endpoint.binding)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)
        return response
