"""
The authentication engine end of the SSO handshake.

The engine reads the LoginContext a profile handler left for this browser,
authenticates the user, records the outcome on the LoginContext and sends
the user back to the profile handler URL.
"""
import logging

from saml2.s_utils import sid
from saml2.saml import AUTHN_PASSWORD_PROTECTED

from .exception import SAMLIdPBadContextError
from .internal import IdPSession
from .internal import LoginContext
from .response import SeeOther

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

REMOTE_USER = "REMOTE_USER"


class RemoteUserLoginHandler(object):
    """
    Trusts the user name the web server put in ``REMOTE_USER``.

    An active IdP session is reused unless the SP asked for fresh
    authentication.
    """

    def __init__(self, services, config=None, name="authn"):
        """
        :type services: samlidp.profiles.base.ProfileServices
        :type config: dict[str, Any]
        :type name: str
        """
        self.services = services
        self.config = config or {}
        self.name = name
        self.session_lifetime = int(self.config.get("session_lifetime", 8 * 60 * 60))

    def register_endpoints(self):
        path = self.config.get("endpoint", "authn/RemoteUser")
        return [("^{}$".format(path), self.login_endpoint)]

    def login_endpoint(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.response.Response
        """
        storage = self.services.session_storage
        conversation_id = lu.get_session_id(context.state)
        login_context = storage.get_login_context(conversation_id)
        if login_context is None:
            raise SAMLIdPBadContextError("No login in progress for this browser")

        session = self.previous_session(context, login_context)
        if session is not None:
            info = session.authn_method_for(login_context.relying_party_id) or session.latest_authn_method()
            login_context.set_authenticated(session.principal_name, info.authentication_method,
                                            info.authentication_instant)
            if session.authn_method_for(login_context.relying_party_id) is None:
                session.record_authn_method(login_context.relying_party_id, info.authentication_method,
                                            info.authentication_instant, info.expiration_instant)
                storage.store_session(session)
            msg = "Reusing session {session} of {principal}".format(
                session=session.session_id, principal=session.principal_name)
        else:
            msg = self.authenticate(context, login_context)

        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)

        storage.store_login_context(conversation_id, login_context)
        return SeeOther(login_context.profile_handler_url)

    def previous_session(self, context, login_context):
        """
        :type context: samlidp.context.RequestContext
        :type login_context: samlidp.internal.LoginContext
        :rtype: samlidp.internal.IdPSession | None
        """
        if login_context.force_authn or context.state is None or not context.state.idp_session_id:
            return None
        session = self.services.session_storage.get_session(context.state.idp_session_id)
        if session is None or not session.principal_name:
            return None
        latest = session.latest_authn_method()
        if latest is None:
            return None
        if latest.expiration_instant is not None and latest.expiration_instant <= self.services.assertion_builder.now():
            logger.debug("Session {} expired".format(session.session_id))
            return None
        return session

    def authentication_method(self, login_context):
        if login_context.requested_authn_methods:
            return login_context.requested_authn_methods[0]
        relying_party = self.services.relying_parties.get(login_context.relying_party_id)
        return relying_party.default_authn_method or AUTHN_PASSWORD_PROTECTED

    def authenticate(self, context, login_context):
        principal = context.http_headers.get(REMOTE_USER)
        if not principal:
            if login_context.is_passive:
                login_context.set_failed(LoginContext.FAILURE_PASSIVE, "No active session and passive requested")
            else:
                login_context.set_failed(LoginContext.FAILURE_GENERIC, "No authenticated user")
            return "Authentication failed for {}".format(login_context.relying_party_id)

        now = self.services.assertion_builder.now()
        method = self.authentication_method(login_context)
        session = IdPSession(session_id=sid(), principal_name=principal, created=now)
        session.record_authn_method(login_context.relying_party_id, method, now,
                                    expiration_instant=now + self.session_lifetime)
        self.services.session_storage.store_session(session)
        context.state.idp_session_id = session.session_id

        login_context.set_authenticated(principal, method, now)
        return "Authenticated {principal} with {method}".format(principal=principal, method=method)
