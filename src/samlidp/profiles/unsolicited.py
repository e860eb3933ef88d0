"""
SSO started without a SAML request: the legacy Shibboleth authentication
request (``providerId``, ``shire``, ``target``, ``time``) and unsolicited
SAML2 SSO. Both are turned into an AuthnRequest that runs through the
regular SSO handshake.
"""
import logging

from saml2 import BINDING_HTTP_POST
from saml2 import VERSION
from saml2.saml import Issuer
from saml2.saml import NAMEID_FORMAT_ENTITY
from saml2.samlp import AuthnRequest
from saml2.samlp import NameIDPolicy

from ..assertion import instant
from ..context import DecodedRequest
from ..context import ProfileKind
from ..exception import MessageDecodingError
from ..exception import ProfileError
from .sso import SSOProfileHandler

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

CLOCK_SKEW = 30


class ShibbolethSSOProfileHandler(SSOProfileHandler):
    """
    Legacy Shibboleth authentication request. ``providerId``, ``shire`` and
    ``target`` are required.
    """
    kind = ProfileKind.SHIBBOLETH_SSO
    solicited = False
    required_parameters = ("providerId", "shire", "target")

    default_endpoints = {
        "urn:mace:shibboleth:1.0:profiles:AuthnRequest": "Shibboleth/SSO",
    }

    def _all_parameters(self, context):
        params = dict(context.qs_params or {})
        params.update(context.request or {})
        return params

    def carries_request(self, context):
        return bool(self._all_parameters(context).get("providerId"))

    def _parameters(self, context):
        params = self._all_parameters(context)
        missing = [name for name in self.required_parameters if not params.get(name)]
        if missing:
            raise MessageDecodingError("Missing request parameters {}".format(", ".join(missing)))
        return params

    def _issue_instant(self, params):
        now = self.services.assertion_builder.now()
        if not params.get("time"):
            return now
        try:
            issued = int(params["time"])
        except ValueError as e:
            raise MessageDecodingError("Malformed time parameter {}".format(params["time"])) from e
        if issued > now + CLOCK_SKEW:
            raise MessageDecodingError("Request time {} lies in the future".format(issued))
        return issued

    def decode(self, context):
        params = self._parameters(context)
        issued = self._issue_instant(params)
        session_id = lu.get_session_id(context.state).rsplit(":", 1)[-1]

        request = AuthnRequest(
            id="_{session}!{time}".format(session=session_id, time=issued),
            version=VERSION,
            issue_instant=instant(issued),
            issuer=Issuer(text=params["providerId"], format=NAMEID_FORMAT_ENTITY),
            name_id_policy=NameIDPolicy(allow_create="true"),
        )
        if params.get("shire"):
            request.assertion_consumer_service_url = params["shire"]

        msg = "Synthesized request {id} for {rp}".format(id=request.id, rp=params["providerId"])
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return DecodedRequest(request, params["providerId"], context.inbound_binding,
                              relay_state=params.get("target"))


class UnsolicitedSSOProfileHandler(ShibbolethSSOProfileHandler):
    """
    IdP initiated SAML2 SSO. Only ``providerId`` is required; without
    ``shire`` the endpoint comes from metadata, HTTP-POST preferred.
    """
    kind = ProfileKind.SAML2_SSO
    required_parameters = ("providerId",)

    default_endpoints = {
        "urn:mace:shibboleth:2.0:profiles:AuthnRequest": "SAML2/Unsolicited/SSO",
    }

    def select_endpoint(self, context):
        request = context.inbound_message
        if request.assertion_consumer_service_url is None:
            try:
                return self.services.endpoint_selector.select(context, binding=BINDING_HTTP_POST)
            except ProfileError:
                logger.debug("No HTTP-POST endpoint for {}, trying other bindings".format(context.peer_entity_id))
        return super().select_endpoint(context)
