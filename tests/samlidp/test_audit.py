import json
import logging

from saml2.samlp import STATUS_AUTHN_FAILED
from saml2.samlp import STATUS_RESPONDER
from saml2.samlp import Response

from samlidp.audit import AuditLogger
from samlidp.context import ProfileKind
from samlidp.context import RequestContext
from samlidp.state import State
from samlidp.status import build_status
from ..util import NOW
from ..util import FakeClock


def test_record(caplog):
    context = RequestContext()
    context.state = State()
    context.profile = ProfileKind.SAML2_SSO
    context.inbound_message_id = "_request1"
    context.outbound_message_id = "_id2"
    context.inbound_binding = "urn:in"
    context.outbound_binding = "urn:out"
    context.peer_entity_id = "https://sp.example"
    context.local_entity_id = "https://idp.example.org/idp"
    context.principal_name = "alice"
    context.released_attributes = {"mail", "eduPersonPrincipalName"}
    context.outbound_message = Response(status=build_status(STATUS_RESPONDER, STATUS_AUTHN_FAILED))

    with caplog.at_level(logging.INFO, logger="samlidp.audit"):
        entry = AuditLogger(clock=FakeClock()).record(context)

    assert entry["timestamp"] == NOW
    assert entry["session_id"] == context.state.session_id
    assert entry["profile"] == "saml2_sso"
    assert entry["attributes"] == ["eduPersonPrincipalName", "mail"]
    assert entry["status"] == STATUS_RESPONDER
    assert entry["sub_status"] == STATUS_AUTHN_FAILED

    records = [r for r in caplog.records if r.name == "samlidp.audit"]
    assert json.loads(records[-1].getMessage()) == entry


def test_record_without_response():
    context = RequestContext()
    entry = AuditLogger(clock=FakeClock(), audit_logger=logging.getLogger("test.audit")).record(context)
    assert entry["status"] is None
    assert entry["profile"] is None
    assert entry["session_id"] is None
