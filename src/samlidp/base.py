"""
The samlidp main module
"""
import logging
import uuid

from .exception import SAMLIdPBadContextError
from .exception import SAMLIdPError
from .exception import SAMLIdPNoBoundEndpointError
from .exception import SAMLIdPStateError
from .exception import SAMLIdPUnknownError
from .plugin_loader import load_handlers
from .plugin_loader import load_services
from .response import BadRequest
from .response import NotFound
from .response import Redirect
from .routing import ProfileRouter
from .state import State
from .state import cookie_to_state
from .state import state_to_cookie

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


class IdPBase(object):
    """
    Base class for a samlidp server.
    Does not contain any server parts.
    """

    def __init__(self, config):
        """
        Creates a samlidp base

        :type config: samlidp.idp_config.IdPConfig
        :param config: samlidp config
        """
        self.config = config

        logger.info("Loading services...")
        self.services = load_services(self.config)
        logger.info("Loading profile handlers...")
        handlers = load_handlers(self.config, self.services)
        self.router = ProfileRouter(handlers)

    def _load_state(self, context):
        """
        Load state from cookie to the context

        :type context: samlidp.context.RequestContext
        :param context: Session context
        """
        try:
            state = cookie_to_state(
                context.cookie,
                self.config["COOKIE_STATE_NAME"],
                self.config["STATE_ENCRYPTION_KEY"],
            )
        except SAMLIdPStateError:
            state = State()
        finally:
            context.state = state
            msg = "Loaded state {state} from cookie {cookie}".format(state=state, cookie=context.cookie)
            logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
            logger.debug(logline)

    def _save_state(self, resp, context):
        """
        Saves a state from context to cookie

        :type resp: samlidp.response.Response
        :type context: samlidp.context.RequestContext

        :param resp: The response
        :param context: Session context
        """
        cookie_name = self.config["COOKIE_STATE_NAME"]
        cookie = state_to_cookie(
            context.state,
            name=cookie_name,
            path="/",
            encryption_key=self.config["STATE_ENCRYPTION_KEY"],
            secure=self.config.get("COOKIE_SECURE"),
            httponly=self.config.get("COOKIE_HTTPONLY"),
            samesite=self.config.get("COOKIE_SAMESITE"),
            max_age=self.config.get("COOKIE_MAX_AGE"),
        )
        resp.headers = [
            (name, value)
            for (name, value) in resp.headers
            if name != "Set-Cookie"
            or not value.startswith("{}=".format(cookie_name))
        ]
        resp.headers.append(tuple(cookie.output().split(": ", 1)))

    def _error_redirect(self, context, message, error):
        error_id = uuid.uuid4().urn
        msg = {
            "message": message,
            "error": str(error),
            "error_id": error_id,
        }
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.error(logline)
        generic_error_url = self.config.get("ERROR_URL")
        if generic_error_url:
            return Redirect("{url}?errorid={error_id}".format(url=generic_error_url, error_id=error_id))
        return None

    def run(self, context):
        """
        Runs the IdP with the given context.

        :type context: samlidp.context.RequestContext
        :rtype: samlidp.response.Response

        :param context: The request context
        :return: response
        """
        try:
            self._load_state(context)
            spec = self.router.endpoint_routing(context)
            resp = spec(context)
            self._save_state(resp, context)
        except SAMLIdPBadContextError as e:
            redirect = self._error_redirect(context, "Bad Request", e)
            if redirect is not None:
                return redirect
            return BadRequest(str(e), content="text/plain")
        except SAMLIdPNoBoundEndpointError as e:
            redirect = self._error_redirect(context, "URL-path is not bound to any endpoint function", e)
            if redirect is not None:
                return redirect
            return NotFound("The service you requested could not be found.", content="text/plain")
        except SAMLIdPError as e:
            redirect = self._error_redirect(context, "Uncaught samlidp error", e)
            if redirect is not None:
                return redirect
            raise
        except Exception as e:
            redirect = self._error_redirect(context, "Uncaught exception", e)
            if redirect is not None:
                return redirect
            raise SAMLIdPUnknownError("Unknown error") from e
        else:
            return resp
