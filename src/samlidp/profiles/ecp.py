"""
SAML2 Enhanced Client or Proxy profile: the client relays the SP's
AuthnRequest over SOAP, authenticated by the web server in front of the IdP.
"""
import logging

from saml2 import BINDING_PAOS
from saml2 import BINDING_SOAP
from saml2.saml import AUTHN_PASSWORD_PROTECTED
from saml2.samlp import STATUS_REQUEST_DENIED
from saml2.samlp import STATUS_REQUESTER

from ..context import DecodedRequest
from ..context import ProfileKind
from ..context import ResolvedPrincipal
from ..exception import AuthenticationError
from ..exception import AuthenticationRequestError
from .base import issuer_of
from .sso import SSOProfileHandler

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

REMOTE_USER = "REMOTE_USER"


class ECPProfileHandler(SSOProfileHandler):
    kind = ProfileKind.SAML2_ECP

    def register_endpoints(self):
        path = self.config.get("endpoint", "SAML2/SOAP/ECP")
        return [("^{}$".format(path), self.handle_soap)]

    def handle_soap(self, context):
        context.inbound_binding = BINDING_PAOS
        return self.handle(context)

    def decode(self, context):
        request, relay_state = self.services.codecs.decoder(BINDING_SOAP).decode(context, self.message_class)
        return DecodedRequest(request, issuer_of(request), BINDING_PAOS, relay_state=relay_state)

    def select_endpoint(self, context):
        """
        The response goes back over the SOAP channel; the ecp:Response header
        names the SP's PAOS endpoint, which must be known from metadata.
        """
        endpoint = super().select_endpoint(context)
        if endpoint.location is not None:
            return endpoint

        candidates = [
            acs for acs in (context.peer_metadata.assertion_consumer_services if context.peer_metadata else [])
            if acs.binding == BINDING_PAOS
        ]
        for acs in candidates:
            if acs.is_default:
                return acs
        if candidates:
            return candidates[0]
        raise AuthenticationRequestError("No PAOS endpoint for relying party {}".format(context.peer_entity_id),
                                         status_code=STATUS_REQUESTER, sub_status_code=STATUS_REQUEST_DENIED)

    def build_response(self, context):
        principal = context.http_headers.get(REMOTE_USER)
        if not principal:
            raise AuthenticationError("No authenticated user on the ECP request")

        now = self.services.assertion_builder.now()
        method = context.require_relying_party_config().default_authn_method or AUTHN_PASSWORD_PROTECTED
        ResolvedPrincipal(principal, authentication_method=method, authentication_instant=now).apply(context)

        msg = "ECP request of {rp} authenticated as {principal}".format(rp=context.peer_entity_id, principal=principal)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)
        return self.build_sso_response(context, now)
