import base64
import re
from urllib.parse import parse_qs
from urllib.parse import urlparse

from saml2 import samlp
from saml2.saml import NAMEID_FORMAT_PERSISTENT
from saml2.saml import NameID
from saml2.saml import Subject
from saml2.samlp import STATUS_SUCCESS
from saml2.samlp import response_from_string
from saml2.soap import class_instances_from_soap_enveloped_saml_thingies
from werkzeug.test import Client
from werkzeug.wrappers import Response

from samlidp import saml1
from samlidp.idp_config import IdPConfig
from samlidp.server import make_app
from samlidp.status import status_codes
from ..conftest import BASE_URL
from ..conftest import EPPN_NAME
from ..conftest import SP_ARTIFACT_ACS
from ..conftest import SP_ENTITY_ID
from ..conftest import SP_POST_ACS
from ..conftest import UID_NAME
from ..util import artifact_resolve
from ..util import attribute_query
from ..util import authn_request
from ..util import redirect_params
from ..util import saml1_request
from ..util import soap_body


def form_value(html, name):
    match = re.search(r'name="{}" value="([^"]*)"'.format(name), html)
    assert match is not None
    return match.group(1)


class TestSSOFlow:
    def test_full_flow(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)

        # incoming authn request
        http_resp = test_client.get("/SAML2/Redirect/SSO",
                                    query_string=redirect_params(authn_request(SP_ENTITY_ID), "relay"))
        assert http_resp.status_code == 303
        assert http_resp.headers["Location"] == BASE_URL + "/authn/RemoteUser"

        # user authenticated by the web server
        http_resp = test_client.get("/authn/RemoteUser", environ_base={"REMOTE_USER": "alice"})
        assert http_resp.status_code == 303
        assert http_resp.headers["Location"] == BASE_URL + "/SAML2/Redirect/SSO"

        # back at the profile handler
        http_resp = test_client.get("/SAML2/Redirect/SSO")
        assert http_resp.status_code == 200
        html = http_resp.data.decode("utf-8")
        assert SP_POST_ACS in html
        assert form_value(html, "RelayState") == "relay"

        response = response_from_string(base64.b64decode(form_value(html, "SAMLResponse")).decode("utf-8"))
        assert status_codes(response.status) == (STATUS_SUCCESS, None)
        assert response.in_response_to == "_request1"
        assertion = response.assertion[0]
        assert assertion.signature is not None
        assert [a.name for a in assertion.attribute_statement[0].attribute] == [EPPN_NAME]

    def test_authentication_without_pending_login(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.get("/authn/RemoteUser", environ_base={"REMOTE_USER": "alice"})
        assert http_resp.status_code == 400

    def test_error_url(self, idp_config_dict):
        idp_config_dict["ERROR_URL"] = "https://idp.example.org/error"
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.get("/authn/RemoteUser")
        assert http_resp.status_code == 302
        location = urlparse(http_resp.headers["Location"])
        assert location.path == "/error"
        assert parse_qs(location.query)["errorid"][0].startswith("urn:uuid:")

    def test_unknown_acs_index(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        request = authn_request(SP_ENTITY_ID, assertion_consumer_service_index="5")
        http_resp = test_client.get("/SAML2/Redirect/SSO", query_string=redirect_params(request))
        assert http_resp.status_code == 400


class TestBackChannelFlow:
    def test_attribute_query(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        query = attribute_query(SP_ENTITY_ID, Subject(name_id=NameID(text="alice", format=NAMEID_FORMAT_PERSISTENT)))
        http_resp = test_client.post("/SAML2/SOAP/AttributeQuery", data=soap_body(query),
                                     content_type="application/soap+xml")
        assert http_resp.status_code == 200
        body = http_resp.data.decode("utf-8")
        assert "Envelope" in body
        assert EPPN_NAME in body
        assert UID_NAME not in body

    def test_garbage_soap_request(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.post("/SAML2/SOAP/ArtifactResolution", data="garbage", content_type="text/xml")
        assert http_resp.status_code == 500
        assert b"Fault" in http_resp.data

    def test_saml1_resolution_fails_as_a_whole(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)

        request = authn_request(SP_ENTITY_ID, assertion_consumer_service_index="1")
        test_client.get("/SAML2/Redirect/SSO", query_string=redirect_params(request))
        test_client.get("/authn/RemoteUser", environ_base={"REMOTE_USER": "alice"})
        http_resp = test_client.get("/SAML2/Redirect/SSO")
        assert http_resp.status_code == 303
        location = urlparse(http_resp.headers["Location"])
        assert location._replace(query="").geturl() == SP_ARTIFACT_ACS
        artifact = parse_qs(location.query)["SAMLart"][0]

        http_resp = test_client.post("/SAML1/SOAP/ArtifactResolution", query_string={"providerId": SP_ENTITY_ID},
                                     data=soap_body(saml1_request([artifact, "AAFunknown"])),
                                     content_type="text/xml")
        assert http_resp.status_code == 200
        response = class_instances_from_soap_enveloped_saml_thingies(http_resp.data.decode("utf-8"), [saml1])["body"]
        assert isinstance(response, saml1.Response)
        assert status_codes(response.status) == (saml1.STATUS1_RESPONDER, saml1.STATUS1_REQUEST_DENIED)
        assert response.extension_elements == []

        # the valid artifact was left in the store
        http_resp = test_client.post("/SAML2/SOAP/ArtifactResolution",
                                     data=soap_body(artifact_resolve(SP_ENTITY_ID, artifact)),
                                     content_type="text/xml")
        assert http_resp.status_code == 200
        response = class_instances_from_soap_enveloped_saml_thingies(http_resp.data.decode("utf-8"), [samlp])["body"]
        assert status_codes(response.status) == (STATUS_SUCCESS, None)
        assert [e.tag for e in response.extension_elements] == ["Response"]


class TestServer:
    def test_status(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.get("/status")
        assert http_resp.status_code == 200
        assert http_resp.data == b"ok"

    def test_unknown_path(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.get("/unknown")
        assert http_resp.status_code == 404

    def test_metadata(self, idp_config_dict):
        test_client = Client(make_app(IdPConfig(idp_config_dict)), Response)
        http_resp = test_client.get("/SAML2/Metadata")
        assert http_resp.status_code == 200
        assert http_resp.headers["Content-Type"] == "application/samlmetadata+xml"
        assert BASE_URL.encode("utf-8") + b"/SAML2/Redirect/SSO" in http_resp.data
