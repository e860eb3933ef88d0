import logging

import samlidp.logging_util as lu
from samlidp.context import ProfileKind
from samlidp.response import Response


logger = logging.getLogger(__name__)


class StatusHandler(object):
    """
    Responds to a query with a simple 200 OK, intended to be used as a
    heartbeat monitor.
    """
    kind = ProfileKind.STATUS

    def __init__(self, services=None, config=None, name="status"):
        self.config = config or {}
        self.name = name

    def register_endpoints(self):
        """
        :rtype: list[(str, (samlidp.context.RequestContext) -> samlidp.response.Response)]
        """
        return [("^{}$".format(self.config.get("endpoint", self.name)), self.status_endpoint)]

    def status_endpoint(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.response.Response
        """
        msg = "Status returning 200 OK"
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)

        return Response("ok", content="text/plain")
