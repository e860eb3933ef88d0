import pytest
from saml2.samlp import STATUS_SUCCESS

from samlidp.authn import RemoteUserLoginHandler
from samlidp.context import RequestContext
from samlidp.profiles.unsolicited import ShibbolethSSOProfileHandler
from samlidp.profiles.unsolicited import UnsolicitedSSOProfileHandler
from samlidp.state import State
from samlidp.status import status_codes
from ...conftest import BASE_URL
from ...conftest import SP_ENTITY_ID
from ...conftest import SP_POST_ACS
from ...util import NOW

SHIBBOLETH_BINDING = "urn:mace:shibboleth:1.0:profiles:AuthnRequest"
UNSOLICITED_BINDING = "urn:mace:shibboleth:2.0:profiles:AuthnRequest"


class _RequestlessSSO:
    path = None
    binding = None

    @pytest.fixture(autouse=True)
    def create_handlers(self, services):
        self.services = services
        self.authn = RemoteUserLoginHandler(services)
        self.state = State()

    def new_context(self, params=None, path=None, remote_user=None):
        context = RequestContext()
        context.path = path or self.path
        context.state = self.state
        context.qs_params = params or {}
        context.request = dict(params or {})
        if remote_user:
            context.http_headers = {"REMOTE_USER": remote_user}
        return context

    def run_flow(self, params):
        resp = self.handler.handle_binding(self.new_context(params), self.binding)
        assert resp.status_code == 303
        resp = self.authn.login_endpoint(self.new_context(path="authn/RemoteUser", remote_user="alice"))
        assert resp.header("Location") == "{}/{}".format(BASE_URL, self.path)
        context = self.new_context()
        return context, self.handler.handle_binding(context, self.binding)


class TestShibbolethSSOProfileHandler(_RequestlessSSO):
    path = "Shibboleth/SSO"
    binding = SHIBBOLETH_BINDING

    @pytest.fixture(autouse=True)
    def create_handler(self, create_handlers):
        self.handler = ShibbolethSSOProfileHandler(self.services)

    def test_register_endpoints(self):
        assert [regex for regex, _ in self.handler.register_endpoints()] == ["^Shibboleth/SSO$"]

    def test_legacy_request(self):
        params = {"providerId": SP_ENTITY_ID, "shire": SP_POST_ACS, "target": "cookie:1234", "time": str(NOW)}
        context, resp = self.run_flow(params)

        assert resp.status_code == 200
        assert 'value="cookie:1234"' in resp.message
        response = context.outbound_message
        assert status_codes(response.status) == (STATUS_SUCCESS, None)
        assert response.in_response_to is None
        assert response.destination == SP_POST_ACS

        confirmation_data = response.assertion[0].subject.subject_confirmation[0].subject_confirmation_data
        assert confirmation_data.in_response_to is None
        assert confirmation_data.recipient == SP_POST_ACS

    def test_synthesized_request(self):
        params = {"providerId": SP_ENTITY_ID, "shire": SP_POST_ACS, "target": "t", "time": str(NOW - 5)}
        decoded = self.handler.decode(self.new_context(params))
        assert decoded.issuer == SP_ENTITY_ID
        assert decoded.relay_state == "t"
        assert decoded.message.assertion_consumer_service_url == SP_POST_ACS
        assert decoded.message.id.endswith("!{}".format(NOW - 5))
        assert decoded.message.issue_instant == "2023-11-14T22:13:15Z"

    @pytest.mark.parametrize("params", [
        {"shire": SP_POST_ACS, "target": "t"},
        {"providerId": SP_ENTITY_ID, "target": "t"},
        {"providerId": SP_ENTITY_ID, "shire": SP_POST_ACS},
        {"providerId": SP_ENTITY_ID, "shire": SP_POST_ACS, "target": "t", "time": "yesterday"},
        {"providerId": SP_ENTITY_ID, "shire": SP_POST_ACS, "target": "t", "time": str(NOW + 3600)},
    ])
    def test_bad_request(self, params):
        resp = self.handler.handle_binding(self.new_context(params), self.binding)
        assert resp.status_code == 400
        assert self.services.session_storage.get_login_context(self.state.session_id) is None

    def test_shire_not_in_metadata(self):
        params = {"providerId": SP_ENTITY_ID, "shire": "https://attacker.example/acs", "target": "t"}
        resp = self.handler.handle_binding(self.new_context(params), self.binding)
        assert resp.status_code == 400


class TestUnsolicitedSSOProfileHandler(_RequestlessSSO):
    path = "SAML2/Unsolicited/SSO"
    binding = UNSOLICITED_BINDING

    @pytest.fixture(autouse=True)
    def create_handler(self, create_handlers):
        self.handler = UnsolicitedSSOProfileHandler(self.services)

    def test_provider_id_only(self):
        context, resp = self.run_flow({"providerId": SP_ENTITY_ID})

        assert resp.status_code == 200
        response = context.outbound_message
        assert status_codes(response.status) == (STATUS_SUCCESS, None)
        assert response.destination == SP_POST_ACS
        assert response.in_response_to is None

    def test_missing_provider_id(self):
        resp = self.handler.handle_binding(self.new_context({"target": "t"}), self.binding)
        assert resp.status_code == 400
