import pytest
from saml2.samlp import STATUS_REQUEST_DENIED
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER
from saml2.samlp import STATUS_SUCCESS
from saml2.samlp import ArtifactResponse

from saml2.soap import class_instances_from_soap_enveloped_saml_thingies

from samlidp import saml1
from samlidp.context import RequestContext
from samlidp.profiles.artifact_resolution import ArtifactResolutionProfileHandler
from samlidp.profiles.artifact_resolution import SAML1ArtifactResolutionProfileHandler
from samlidp.state import State
from samlidp.status import status_codes
from samlidp.store import ArtifactMapEntry
from ...conftest import ECP_SP_ENTITY_ID
from ...conftest import IDP_ENTITY_ID
from ...conftest import SP_ENTITY_ID
from ...util import NOW
from ...util import artifact_resolve
from ...util import saml1_request
from ...util import soap_body

STORED_MESSAGE = (
    '<ns0:Response xmlns:ns0="urn:oasis:names:tc:SAML:2.0:protocol" ID="_stored" Version="2.0" '
    'IssueInstant="2023-11-14T22:13:20Z" />'
)


class TestArtifactResolutionProfileHandler:
    @pytest.fixture(autouse=True)
    def create_handler(self, services):
        self.services = services
        self.store = services.artifact_store
        self.handler = ArtifactResolutionProfileHandler(services)

    def store_artifact(self, artifact="AAQAAart", relying_party_id=SP_ENTITY_ID, issuer_id=IDP_ENTITY_ID,
                       expiration=NOW + 60):
        self.store.put(ArtifactMapEntry(artifact, issuer_id, relying_party_id, STORED_MESSAGE, expiration))

    def resolve(self, artifact="AAQAAart", issuer=SP_ENTITY_ID):
        context = RequestContext()
        context.path = "SAML2/SOAP/ArtifactResolution"
        context.state = State()
        context.secure = True
        context.request = {"body": soap_body(artifact_resolve(issuer, artifact))}
        resp = self.handler.handle_soap(context)
        return context, resp

    def test_register_endpoints(self):
        assert [regex for regex, _ in self.handler.register_endpoints()] == ["^SAML2/SOAP/ArtifactResolution$"]

    def test_resolution(self):
        self.store_artifact()
        context, resp = self.resolve()

        assert resp.status_code == 200
        response = context.outbound_message
        assert isinstance(response, ArtifactResponse)
        assert status_codes(response.status) == (STATUS_SUCCESS, None)
        assert response.in_response_to == "_resolve1"
        assert [e.tag for e in response.extension_elements] == ["Response"]
        assert response.extension_elements[0].attributes["ID"] == "_stored"
        assert context.get_decoration(RequestContext.KEY_DEREFERENCED_MESSAGES) == [STORED_MESSAGE]

    def test_artifact_is_single_use(self):
        self.store_artifact()
        self.resolve()
        context, _ = self.resolve()
        response = context.outbound_message
        assert status_codes(response.status) == (STATUS_RESPONDER, STATUS_REQUEST_DENIED)
        assert response.extension_elements == []

    def test_unknown_artifact(self):
        context, resp = self.resolve("AAQAAunknown")

        assert resp.status_code == 200
        response = context.outbound_message
        assert isinstance(response, ArtifactResponse)
        assert status_codes(response.status) == (STATUS_RESPONDER, STATUS_REQUEST_DENIED)
        assert response.in_response_to == "_resolve1"
        assert response.extension_elements == []

    def test_expired_artifact(self):
        self.store_artifact(expiration=NOW)
        context, _ = self.resolve()
        assert status_codes(context.outbound_message.status) == (STATUS_RESPONDER, STATUS_REQUEST_DENIED)

    def test_artifact_of_another_relying_party(self):
        self.store_artifact(relying_party_id=ECP_SP_ENTITY_ID)
        context, _ = self.resolve()
        assert status_codes(context.outbound_message.status) == (STATUS_REQUESTER, STATUS_REQUEST_DENIED)
        assert self.store.get("AAQAAart") is not None

    def test_artifact_of_another_issuer(self):
        self.store_artifact(issuer_id="https://other-idp.example")
        context, _ = self.resolve()
        assert status_codes(context.outbound_message.status) == (STATUS_RESPONDER, STATUS_REQUEST_DENIED)
        assert self.store.get("AAQAAart") is not None

    def test_profile_not_configured(self):
        self.store_artifact(relying_party_id=ECP_SP_ENTITY_ID)
        context, _ = self.resolve(issuer=ECP_SP_ENTITY_ID)
        assert status_codes(context.outbound_message.status) == (STATUS_RESPONDER, None)
        assert self.store.get("AAQAAart") is not None

    def test_empty_artifact(self):
        context, _ = self.resolve(artifact="")
        assert status_codes(context.outbound_message.status) == (STATUS_REQUESTER, STATUS_REQUEST_DENIED)


class TestSAML1ArtifactResolutionProfileHandler:
    @pytest.fixture(autouse=True)
    def create_handler(self, services):
        self.store = services.artifact_store
        self.handler = SAML1ArtifactResolutionProfileHandler(services)

    def store_artifact(self, artifact, relying_party_id=SP_ENTITY_ID):
        self.store.put(ArtifactMapEntry(artifact, IDP_ENTITY_ID, relying_party_id, STORED_MESSAGE, NOW + 60))

    def resolve(self, artifacts, provider_id=SP_ENTITY_ID, request=None):
        context = RequestContext()
        context.path = "SAML1/SOAP/ArtifactResolution"
        context.state = State()
        context.secure = True
        context.qs_params = {"providerId": provider_id} if provider_id else {}
        context.request = {"body": soap_body(request or saml1_request(artifacts))}
        resp = self.handler.handle_soap(context)
        return context, resp

    def test_register_endpoints(self):
        assert [regex for regex, _ in self.handler.register_endpoints()] == ["^SAML1/SOAP/ArtifactResolution$"]

    def test_resolves_all_artifacts(self):
        self.store_artifact("AAFart1")
        self.store_artifact("AAFart2")
        context, resp = self.resolve(["AAFart1", "AAFart2"])

        assert resp.status_code == 200
        response = context.outbound_message
        assert isinstance(response, saml1.Response)
        assert status_codes(response.status) == (saml1.STATUS1_SUCCESS, None)
        assert response.in_response_to == "_request1"
        assert [e.attributes["ID"] for e in response.extension_elements] == ["_stored", "_stored"]
        assert context.saml_major_version == 1
        assert self.store.get("AAFart1") is None
        assert self.store.get("AAFart2") is None

    def test_response_on_the_wire(self):
        self.store_artifact("AAFart1")
        _, resp = self.resolve(["AAFart1"])

        body = resp.message.decode("utf-8") if isinstance(resp.message, bytes) else resp.message
        # the QName status value needs its prefix declared
        assert 'xmlns:saml1p="urn:oasis:names:tc:SAML:1.0:protocol"' in body
        response = class_instances_from_soap_enveloped_saml_thingies(body, [saml1])["body"]
        assert isinstance(response, saml1.Response)
        assert response.status.status_code.value == "saml1p:Success"
        assert response.major_version == "1"

    def test_unknown_artifact_fails_whole_request(self):
        self.store_artifact("AAFart1")
        context, resp = self.resolve(["AAFart1", "AAFunknown"])

        assert resp.status_code == 200
        response = context.outbound_message
        assert isinstance(response, saml1.Response)
        assert status_codes(response.status) == (saml1.STATUS1_RESPONDER, saml1.STATUS1_REQUEST_DENIED)
        assert response.in_response_to == "_request1"
        assert response.extension_elements == []
        assert self.store.get("AAFart1") is not None

    def test_artifact_of_another_relying_party_fails_whole_request(self):
        self.store_artifact("AAFart1")
        self.store_artifact("AAFart2", relying_party_id=ECP_SP_ENTITY_ID)
        context, _ = self.resolve(["AAFart1", "AAFart2"])

        response = context.outbound_message
        assert status_codes(response.status) == (saml1.STATUS1_REQUESTER, saml1.STATUS1_REQUEST_DENIED)
        assert response.extension_elements == []
        assert self.store.get("AAFart1") is not None
        assert self.store.get("AAFart2") is not None

    def test_request_without_artifacts(self):
        context, _ = self.resolve([])
        assert status_codes(context.outbound_message.status) == (saml1.STATUS1_REQUESTER,
                                                                 saml1.STATUS1_REQUEST_DENIED)

    def test_saml2_version_is_rejected(self):
        self.store_artifact("AAFart1")
        context, _ = self.resolve(None, request=saml1_request(["AAFart1"], major_version="2", minor_version="0"))

        assert status_codes(context.outbound_message.status) == (saml1.STATUS1_VERSION_MISMATCH,
                                                                 saml1.STATUS1_REQUEST_VERSION_TOO_HIGH)
        assert self.store.get("AAFart1") is not None

    def test_saml10_is_accepted(self):
        self.store_artifact("AAFart1")
        context, _ = self.resolve(None, request=saml1_request(["AAFart1"], minor_version="0"))
        assert status_codes(context.outbound_message.status) == (saml1.STATUS1_SUCCESS, None)

    def test_requester_must_identify_itself(self):
        self.store_artifact("AAFart1")
        _, resp = self.resolve(["AAFart1"], provider_id=None)

        assert resp.status_code == 500
        assert "Fault" in resp.message
        assert self.store.get("AAFart1") is not None

    def test_profile_not_configured(self):
        self.store_artifact("AAFart1", relying_party_id=ECP_SP_ENTITY_ID)
        context, _ = self.resolve(["AAFart1"], provider_id=ECP_SP_ENTITY_ID)
        assert status_codes(context.outbound_message.status) == (saml1.STATUS1_RESPONDER, None)
        assert self.store.get("AAFart1") is not None
