"""
SAML2 Web Browser SSO.

The handshake spans two HTTP requests. Leg 1 decodes the AuthnRequest,
persists a LoginContext keyed by the browser state and sends the user to the
authentication engine. The engine records the outcome on the LoginContext and
sends the user back to the profile handler URL, where leg 2 consumes the
LoginContext and answers the SP.
"""
import functools
import logging

from saml2 import BINDING_HTTP_POST
from saml2 import BINDING_HTTP_REDIRECT
from saml2.saml import SCM_BEARER
from saml2.samlp import AuthnRequest
from saml2.samlp import authn_request_from_string

from ..context import DecodedRequest
from ..context import ProfileKind
from ..context import ReadyResponse
from ..context import RequestContext
from ..context import ResolvedPrincipal
from ..context import Suspended
from ..exception import AttributeRequestError
from ..exception import AuthenticationError
from ..exception import PassiveAuthenticationError
from ..internal import LoginContext
from ..response import SeeOther
from ..status import success_status
from .base import ProfileHandler
from .base import issuer_of

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


def as_bool(value):
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def requested_authn_methods(request):
    """
    :type request: saml2.samlp.AuthnRequest
    :rtype: list[str]
    """
    requested = request.requested_authn_context
    if requested is None:
        return []
    refs = list(requested.authn_context_class_ref or []) + list(requested.authn_context_decl_ref or [])
    return [ref.text.strip() for ref in refs if ref.text]


def requested_decl_refs(request):
    requested = request.requested_authn_context
    if requested is None:
        return []
    return [ref.text.strip() for ref in requested.authn_context_decl_ref or [] if ref.text]


class SSOProfileHandler(ProfileHandler):
    """
    Front channel SSO over HTTP-Redirect and HTTP-POST.
    """
    kind = ProfileKind.SAML2_SSO
    message_class = AuthnRequest
    # responses to synthesized requests carry no InResponseTo
    solicited = True

    default_endpoints = {
        BINDING_HTTP_REDIRECT: "SAML2/Redirect/SSO",
        BINDING_HTTP_POST: "SAML2/POST/SSO",
    }

    def register_endpoints(self):
        endpoints = self.config.get("endpoints", self.default_endpoints)
        return [
            ("^{}$".format(path), functools.partial(self.handle_binding, binding=binding))
            for binding, path in endpoints.items()
        ]

    def handle_binding(self, context, binding):
        """
        Endpoint function: a request arriving over ``binding``. The same URL
        is the resume point of the handshake. A request carrying a new
        protocol message always starts over, whatever LoginContext is left
        from an earlier handshake.

        :type context: samlidp.context.RequestContext
        :type binding: str
        :rtype: samlidp.response.Response
        """
        context.inbound_binding = binding
        if self.carries_request(context):
            self._discard_login_context(context)
            return self.handle(context)

        login_context = self._completed_login_context(context)
        if login_context is None:
            return self.handle(context)
        return self.resume(context, login_context)

    def carries_request(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: bool
        """
        return bool((context.request or {}).get("SAMLRequest"))

    def _discard_login_context(self, context):
        conversation_id = lu.get_session_id(context.state)
        stale = self.services.session_storage.pop_login_context(conversation_id)
        if stale is not None:
            msg = "Discarding LoginContext of {rp}, a new request arrived".format(rp=stale.relying_party_id)
            logline = lu.LOG_FMT.format(id=conversation_id, message=msg)
            logger.info(logline)

    def _completed_login_context(self, context):
        """
        Consumes the LoginContext of this browser if the authentication
        engine completed it for this profile.

        :rtype: samlidp.internal.LoginContext | None
        """
        conversation_id = lu.get_session_id(context.state)
        storage = self.services.session_storage
        login_context = storage.get_login_context(conversation_id)
        if login_context is None or not login_context.is_complete or login_context.profile != self.kind.value:
            return None
        # a concurrent request may consume it first
        return storage.pop_login_context(conversation_id)

    def decode(self, context):
        request, relay_state = self.services.codecs.decoder(context.inbound_binding).decode(
            context, self.message_class)
        return DecodedRequest(request, issuer_of(request), context.inbound_binding, relay_state=relay_state)

    def resume(self, context, login_context):
        """
        Leg 2: rebuilds the request from the LoginContext and answers it.

        :type context: samlidp.context.RequestContext
        :type login_context: samlidp.internal.LoginContext
        :rtype: samlidp.response.Response
        """
        msg = "Resuming {profile} for {rp}".format(profile=self.kind.value, rp=login_context.relying_party_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)

        request = authn_request_from_string(login_context.authn_request)
        DecodedRequest(
            request,
            login_context.relying_party_id,
            login_context.inbound_binding,
            relay_state=login_context.relay_state,
        ).apply(context)
        context.decorate(RequestContext.KEY_LOGIN_CONTEXT, login_context)
        return self.run_stages(context)

    def populate_context(self, context):
        super().populate_context(context)
        context.decorate(RequestContext.KEY_AUTHN_REQUEST, context.inbound_message)

    def select_endpoint(self, context):
        request = context.inbound_message
        return self.services.endpoint_selector.select(
            context,
            acs_url=request.assertion_consumer_service_url,
            acs_index=request.assertion_consumer_service_index,
            binding=request.protocol_binding,
        )

    def build_response(self, context):
        login_context = context.get_decoration(RequestContext.KEY_LOGIN_CONTEXT)
        if login_context is None:
            return self.start_authentication(context)
        return self.finish_authentication(context, login_context)

    def profile_handler_url(self, context):
        return "{}/{}".format(self.services.base_url, context.path)

    def start_authentication(self, context):
        """
        Leg 1: persists the LoginContext and hands over to the
        authentication engine.

        :type context: samlidp.context.RequestContext
        :rtype: samlidp.context.Suspended
        """
        request = context.inbound_message
        # malformed destinations are rejected before the user authenticates
        context.peer_endpoint = self.select_endpoint(context)

        login_context = LoginContext(
            conversation_id=lu.get_session_id(context.state),
            relying_party_id=context.peer_entity_id,
            relay_state=context.relay_state,
            requested_authn_methods=requested_authn_methods(request),
            authn_request=str(request),
            inbound_binding=context.inbound_binding,
            profile=self.kind.value,
            profile_handler_url=self.profile_handler_url(context),
            force_authn=as_bool(request.force_authn),
            is_passive=as_bool(request.is_passive),
        )
        self.services.session_storage.store_login_context(login_context.conversation_id, login_context)

        msg = "Authentication requested by {rp}, request {id}".format(
            rp=context.peer_entity_id, id=context.inbound_message_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)
        return Suspended(SeeOther(self.services.authn_url))

    def finish_authentication(self, context, login_context):
        """
        Leg 2: turns the authentication outcome into a Response.

        :type context: samlidp.context.RequestContext
        :type login_context: samlidp.internal.LoginContext
        :rtype: samlidp.context.ReadyResponse
        """
        if login_context.authentication_failure == LoginContext.FAILURE_PASSIVE:
            raise PassiveAuthenticationError(login_context.authentication_failure_message
                                             or "Passive authentication not possible")
        if login_context.authentication_failure:
            raise AuthenticationError(login_context.authentication_failure_message or "Authentication failed")

        session = None
        if context.state is not None and context.state.idp_session_id:
            session = self.services.session_storage.get_session(context.state.idp_session_id)
        ResolvedPrincipal(
            login_context.principal_name,
            authentication_method=login_context.authentication_method,
            authentication_instant=login_context.authentication_instant,
            session=session,
        ).apply(context)
        return self.build_sso_response(context, login_context.authentication_instant)

    def check_requested_subject(self, context, request):
        """
        The authenticated principal must be the one the SP asked for.

        :raise AuthenticationError: on mismatch
        """
        if request.subject is None or request.subject.name_id is None:
            return
        try:
            requested = self.services.attribute_authority.get_principal(context, request.subject.name_id)
        except AttributeRequestError as e:
            raise AuthenticationError("Requested subject could not be resolved") from e
        if requested != context.principal_name:
            raise AuthenticationError("Authenticated principal does not match requested subject")

    def build_sso_response(self, context, authentication_instant=None):
        """
        Builds the successful Response for the authenticated principal.

        :type context: samlidp.context.RequestContext
        :type authentication_instant: int | None
        :rtype: samlidp.context.ReadyResponse
        """
        services = self.services
        builder = services.assertion_builder
        authority = services.attribute_authority
        request = context.inbound_message
        profile_config = context.require_profile_config()
        relying_party_id = context.require_inbound_issuer()

        self.check_requested_subject(context, request)
        endpoint = context.peer_endpoint = self.select_endpoint(context)
        now = builder.now()

        released = authority.get_attributes(context)
        name_id_policy = request.name_id_policy
        required_format = name_id_policy.format if name_id_policy is not None else None
        name_id = authority.build_name_id(
            context,
            released,
            required_format=required_format,
            metadata_formats=context.peer_metadata.name_id_formats if context.peer_metadata else None,
            default_format=profile_config.default_name_id_format,
        )

        decision = services.crypto_policy.decide(
            context, services.codecs.encoder(endpoint.binding), name_id_policy_format=required_format)
        subject = builder.build_subject(
            name_id,
            SCM_BEARER,
            recipient=endpoint.location,
            in_response_to=request.id if self.solicited else None,
            not_on_or_after=now + profile_config.assertion_lifetime,
            address=context.peer_address,
        )
        services.crypto_policy.apply_to_subject(decision, subject)

        method = context.authentication_method
        session = context.user_session
        authn_statement = builder.build_authn_statement(
            authentication_instant if authentication_instant is not None else now,
            class_ref=None if method in requested_decl_refs(request) else method,
            decl_ref=method if method in requested_decl_refs(request) else None,
            session_index=session.session_id if session is not None else None,
            session_not_on_or_after=(now + profile_config.max_sp_session_lifetime
                                     if profile_config.max_sp_session_lifetime > 0 else None),
            address=context.peer_address,
        )
        attribute_statement = None
        if profile_config.include_attribute_statement:
            attribute_statement = authority.build_attribute_statement(released)

        assertion = builder.build_assertion(
            context.require_local_entity_id(),
            now,
            subject,
            builder.build_conditions(now, profile_config, relying_party_id),
            authn_statement=authn_statement,
            attribute_statement=attribute_statement,
        )
        assertion = services.crypto_policy.apply_to_assertion(decision, assertion)

        response = builder.build_response(
            context.local_entity_id,
            success_status(),
            in_response_to=request.id if self.solicited else None,
            destination=endpoint.location,
            assertion=assertion,
        )
        return ReadyResponse(response, endpoint, context.relay_state)
