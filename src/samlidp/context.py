from enum import Enum
from typing import Any, Optional

from saml2.samlp import STATUS_RESPONDER

from samlidp.exception import ProfileError
from samlidp.exception import SAMLIdPBadContextError


class ProfileKind(Enum):
    """
    The profiles the engine can run. The value is the configuration key of
    the profile.
    """
    SAML2_SSO = "saml2_sso"
    SHIBBOLETH_SSO = "shibboleth_sso"
    SAML2_ATTRIBUTE_QUERY = "saml2_attribute_query"
    SAML2_ARTIFACT_RESOLUTION = "saml2_artifact_resolution"
    SAML1_ARTIFACT_RESOLUTION = "saml1_artifact_resolution"
    SAML2_ECP = "saml2_ecp"
    SAML_METADATA = "saml_metadata"
    STATUS = "status"


class RequestContext(object):
    """
    Holds the protocol state of the current request as it moves through a
    profile handler.

    Fields are filled in stage by stage. A stage that depends on a field set
    by an earlier stage reads it through one of the ``require_*`` accessors,
    which fail with a responder fault when the field is missing.
    """

    KEY_AUTHN_REQUEST = "authn_request"
    KEY_ATTRIBUTE_QUERY = "attribute_query"
    KEY_ARTIFACT_RESOLVE = "artifact_resolve"
    KEY_LOGIN_CONTEXT = "login_context"
    KEY_REQUESTED_NAME_ID = "requested_name_id"
    KEY_REQUESTED_ATTRIBUTES = "requested_attributes"
    KEY_DEREFERENCED_MESSAGES = "dereferenced_messages"

    def __init__(self) -> None:
        self._path: Optional[str] = None
        # transport
        self.request: dict[str, Any] = None
        self.request_method = None
        self.request_uri = None
        self.qs_params = None
        self.http_headers: dict[str, str] = {}
        self.cookie = None
        self.state = None
        self.peer_address: Optional[str] = None
        self.secure = False

        # protocol
        self.profile = None
        self.saml_version: Optional[str] = None
        self.inbound_binding: Optional[str] = None
        self.outbound_binding: Optional[str] = None
        self.inbound_message = None
        self.inbound_message_id: Optional[str] = None
        self.inbound_issuer: Optional[str] = None
        self.relay_state: Optional[str] = None
        self.outbound_message = None
        self.outbound_message_id: Optional[str] = None

        # parties
        self.peer_entity_id: Optional[str] = None
        self.peer_metadata = None
        self.peer_endpoint = None
        self.local_entity_id: Optional[str] = None
        self.local_metadata = None
        self.metadata_provider = None
        self.relying_party_config = None
        self.profile_config = None

        # subject
        self.principal_name: Optional[str] = None
        self.authentication_method: Optional[str] = None
        self.user_session = None

        # outcome
        self.failure_status = None
        self.released_attributes: set[str] = set()
        self.payload: dict[str, Any] = {}

    @property
    def path(self) -> Optional[str]:
        """
        Get the path

        :return: context path
        """
        return self._path

    @path.setter
    def path(self, p: str) -> None:
        """
        Inserts a path to the context.
        The path is stripped of the base url, so for example
        https://idp.example.org/SAML2/POST/SSO is inserted as SAML2/POST/SSO

        :type p: str

        :param p: A path to an endpoint.
        :return: None
        """
        if not p:
            raise ValueError("path can't be set to None")
        elif p.startswith("/"):
            raise ValueError("path can't start with '/'")
        self._path = p

    @property
    def saml_major_version(self) -> Optional[int]:
        """
        Major version of the inbound message, 1 for SAML 1.x and 2 for
        SAML 2.0, None when unknown.
        """
        try:
            return int(self.saml_version.split(".")[0])
        except (AttributeError, ValueError):
            return None

    def decorate(self, key: str, value: Any) -> "RequestContext":
        """
        Add profile specific data to the context
        """
        self.payload[key] = value
        return self

    def get_decoration(self, key: str) -> Any:
        """
        Retrieve profile specific data from the context
        """
        return self.payload.get(key)

    def _require(self, name: str, description: str) -> Any:
        value = getattr(self, name)
        if value is None:
            raise ProfileError(
                "Unable to process request, {} is not available".format(description),
                status_code=STATUS_RESPONDER,
            )
        return value

    def require_inbound_issuer(self) -> str:
        return self._require("inbound_issuer", "the message issuer")

    def require_metadata_provider(self):
        return self._require("metadata_provider", "the metadata provider")

    def require_relying_party_config(self):
        return self._require("relying_party_config", "the relying party configuration")

    def require_profile_config(self):
        return self._require("profile_config", "the profile configuration")

    def require_peer_endpoint(self):
        return self._require("peer_endpoint", "the relying party endpoint")

    def require_local_entity_id(self) -> str:
        return self._require("local_entity_id", "the local entity id")


class DecodedRequest(object):
    """
    Result of the decode stage: the inbound message and who sent it.
    """

    def __init__(self, message, issuer, binding, relay_state=None, message_id=None):
        if issuer is None:
            raise SAMLIdPBadContextError("decoded request without an issuer")
        self.message = message
        self.issuer = issuer
        self.binding = binding
        self.relay_state = relay_state
        self.message_id = message_id if message_id is not None else getattr(message, "id", None)

    def apply(self, context):
        context.inbound_message = self.message
        context.inbound_issuer = self.issuer
        context.inbound_binding = self.binding
        context.inbound_message_id = self.message_id
        context.relay_state = self.relay_state
        context.peer_entity_id = self.issuer
        context.saml_version = getattr(self.message, "version", None)
        return context


class ResolvedPrincipal(object):
    """
    Result of principal resolution: the subject the response is about.
    """

    def __init__(self, principal_name, authentication_method=None, authentication_instant=None,
                 session=None):
        if not principal_name:
            raise SAMLIdPBadContextError("resolved principal without a name")
        self.principal_name = principal_name
        self.authentication_method = authentication_method
        self.authentication_instant = authentication_instant
        self.session = session

    def apply(self, context):
        context.principal_name = self.principal_name
        context.authentication_method = self.authentication_method
        context.user_session = self.session
        return context


class ReadyResponse(object):
    """
    Result of the build stage: a message ready to be handed to an encoder.
    """

    def __init__(self, message, endpoint, relay_state=None):
        self.message = message
        self.endpoint = endpoint
        self.relay_state = relay_state


class Suspended(object):
    """
    Result of a profile stage that hands control to another component and
    expects to be resumed by a later request.
    """

    def __init__(self, response):
        self.response = response
