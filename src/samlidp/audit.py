"""
Audit trail of completed requests, one JSON line per request on the
``samlidp.audit`` logger.
"""
import json
import logging
import time

from .status import status_codes


logger = logging.getLogger("samlidp.audit")


class AuditLogger(object):
    """
    Writes an audit record for every request that produced a SAML response.
    """

    def __init__(self, clock=None, audit_logger=None):
        self.clock = clock or time.time
        self.logger = audit_logger or logger

    def record(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: dict[str, Any]
        """
        status = getattr(context.outbound_message, "status", None)
        status_code, sub_status_code = status_codes(status) if status is not None else (None, None)
        entry = {
            "timestamp": int(self.clock()),
            "session_id": getattr(context.state, "session_id", None),
            "profile": context.profile.value if context.profile is not None else None,
            "request_id": context.inbound_message_id,
            "response_id": context.outbound_message_id,
            "inbound_binding": context.inbound_binding,
            "outbound_binding": context.outbound_binding,
            "relying_party": context.peer_entity_id,
            "asserting_party": context.local_entity_id,
            "principal": context.principal_name,
            "authn_method": context.authentication_method,
            "attributes": sorted(context.released_attributes),
            "status": status_code,
            "sub_status": sub_status_code,
        }
        self.logger.info(json.dumps(entry))
        return entry
