"""
Artifact Resolution: an SP exchanges an artifact it received over the front
channel for the message the artifact stands for. SAML 2.0 resolves one
artifact per request, SAML 1.1 any number of them at once.
"""
import logging

from saml2 import BINDING_SOAP
from saml2 import extension_element_from_string
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import ArtifactResolve
from saml2.samlp import ArtifactResponse

from .. import saml1
from ..assertion import instant
from ..context import DecodedRequest
from ..context import ProfileKind
from ..context import ReadyResponse
from ..context import RequestContext
from ..exception import ArtifactResolutionError
from ..exception import MessageDecodingError
from ..exception import ProfileError
from ..status import success_status
from .base import ProfileHandler
from .base import issuer_of

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


class ArtifactResolutionProfileHandler(ProfileHandler):
    kind = ProfileKind.SAML2_ARTIFACT_RESOLUTION
    message_class = ArtifactResolve
    response_class = ArtifactResponse

    def register_endpoints(self):
        path = self.config.get("endpoint", "SAML2/SOAP/ArtifactResolution")
        return [("^{}$".format(path), self.handle_soap)]

    def handle_soap(self, context):
        context.inbound_binding = BINDING_SOAP
        return self.handle(context)

    def decode(self, context):
        resolve, _ = self.services.codecs.decoder(BINDING_SOAP).decode(context, self.message_class)
        return DecodedRequest(resolve, issuer_of(resolve), BINDING_SOAP)

    def populate_context(self, context):
        super().populate_context(context)
        context.decorate(RequestContext.KEY_ARTIFACT_RESOLVE, context.inbound_message)

    @staticmethod
    def requested_artifacts(resolve):
        if resolve.artifact is None or not resolve.artifact.text:
            raise ArtifactResolutionError("ArtifactResolve holds no artifact", status_code=STATUS_REQUESTER)
        return [resolve.artifact.text.strip()]

    def dereference(self, context, artifacts):
        """
        Takes the messages of all artifacts out of the store. Any artifact
        that fails validation fails the whole request and nothing is removed.

        :type context: samlidp.context.RequestContext
        :type artifacts: list[str]
        :rtype: list[samlidp.store.ArtifactMapEntry]
        """
        store = self.services.artifact_store
        if store is None:
            raise ProfileError("Artifact resolution is not available")
        entries = store.take_all(
            artifacts,
            issuer_id=context.require_local_entity_id(),
            relying_party_id=context.require_inbound_issuer(),
            now=self.services.assertion_builder.now(),
        )
        context.decorate(RequestContext.KEY_DEREFERENCED_MESSAGES, [entry.message for entry in entries])

        msg = "Dereferenced {count} artifact(s) for {rp}".format(count=len(entries), rp=context.peer_entity_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)
        return entries

    def build_response(self, context):
        resolve = context.inbound_message
        endpoint = context.peer_endpoint = self.select_endpoint(context)
        entries = self.dereference(context, self.requested_artifacts(resolve))

        response = self.services.assertion_builder.build_response(
            context.local_entity_id,
            success_status(),
            in_response_to=resolve.id,
            response_class=ArtifactResponse,
        )
        response.extension_elements = [extension_element_from_string(entry.message) for entry in entries]
        return ReadyResponse(response, endpoint)


class SAML1ArtifactResolutionProfileHandler(ArtifactResolutionProfileHandler):
    """
    SAML 1.1 artifact resolution. A samlp:Request carries one or more
    AssertionArtifacts, dereferenced together: when one of them fails, none
    is removed from the store and the response holds only the Status.

    SAML 1.1 requests name no issuer, the requester identifies itself with
    the ``providerId`` query parameter of the endpoint URL.
    """
    kind = ProfileKind.SAML1_ARTIFACT_RESOLUTION
    message_class = saml1.Request
    response_class = saml1.Response
    saml_versions = ((1, 0), (1, 1))

    def register_endpoints(self):
        path = self.config.get("endpoint", "SAML1/SOAP/ArtifactResolution")
        return [("^{}$".format(path), self.handle_soap)]

    def decode(self, context):
        request, _ = self.services.codecs.decoder(BINDING_SOAP).decode(context, self.message_class)
        requester = (context.qs_params or {}).get("providerId")
        if not requester:
            raise MessageDecodingError("No providerId given with SAML 1 Request {}".format(request.id))
        return DecodedRequest(request, requester, BINDING_SOAP)

    @staticmethod
    def requested_artifacts(request):
        artifacts = [(artifact.text or "").strip() for artifact in request.assertion_artifact]
        if not artifacts or not all(artifacts):
            raise ArtifactResolutionError("Request holds an empty or no AssertionArtifact",
                                          status_code=STATUS_REQUESTER)
        return artifacts

    def build_response(self, context):
        context.peer_endpoint = self.select_endpoint(context)
        entries = self.dereference(context, self.requested_artifacts(context.inbound_message))

        response = self.status_response(context, success_status())
        response.extension_elements = [extension_element_from_string(entry.message) for entry in entries]
        return ReadyResponse(response, context.peer_endpoint)

    def status_response(self, context, status):
        builder = self.services.assertion_builder
        return saml1.Response(
            id=builder.new_id(),
            in_response_to=context.inbound_message_id,
            issue_instant=instant(builder.now()),
            status=saml1.status_from_saml2(status),
        )
