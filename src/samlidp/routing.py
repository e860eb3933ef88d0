"""
Maps url paths to the endpoint functions of the profile handlers.
"""
import logging
import re

from samlidp.exception import SAMLIdPBadContextError
from samlidp.exception import SAMLIdPNoBoundEndpointError

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


class ProfileRouter(object):
    """
    Routes url paths to the endpoint functions the handlers register.
    """

    def __init__(self, handlers):
        """
        :type handlers: list[samlidp.profiles.base.ProfileHandler]

        :param handlers: every handler served by the IdP, profile handlers
            as well as the authentication engine and the status handler
        """
        if not handlers:
            raise ValueError("Need at least one profile handler")

        self.handlers = {
            handler.name: {"instance": handler, "endpoints": handler.register_endpoints()}
            for handler in handlers
        }
        logger.debug("Loaded handlers with endpoints: {}".format(
            {name: [regex for regex, _ in handler["endpoints"]] for name, handler in self.handlers.items()}
        ))

    def endpoint_routing(self, context):
        """
        Finds the endpoint function bound to the path

        :type context: samlidp.context.RequestContext
        :rtype: (samlidp.context.RequestContext) -> samlidp.response.Response

        :param context: The request context
        :return: the bound endpoint function
        """
        if context.path is None:
            msg = "Context did not contain a path!"
            logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
            logger.debug(logline)
            raise SAMLIdPBadContextError("Context did not contain any path")

        msg = "Routing path: {path}".format(path=context.path)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)

        for name, handler in self.handlers.items():
            for regex, spec in handler["endpoints"]:
                if re.search(regex, context.path) is not None:
                    msg = "Found registered endpoint: handler name:'{name}', endpoint: {endpoint}".format(
                        name=name, endpoint=context.path
                    )
                    logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
                    logger.debug(logline)
                    return spec

        raise SAMLIdPNoBoundEndpointError("'{}' not bound to any function".format(context.path))
