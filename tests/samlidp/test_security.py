import os

import pytest
from saml2.saml import NAMEID_FORMAT_TRANSIENT
from saml2.saml import SCM_BEARER
from saml2.saml import Assertion
from saml2.saml import EncryptedAssertion
from saml2.saml import EncryptedID
from saml2.saml import NameID
from saml2.samlp import Response
from saml2.samlp import response_from_string
from saml2.xmlenc import EncryptedData

from samlidp.assertion import AssertionBuilder
from samlidp.context import ProfileKind
from samlidp.crypto_policy import CryptoDecision
from samlidp.crypto_policy import CryptoPolicyEngine
from samlidp.exception import SAMLIdPConfigurationError
from samlidp.relying_party import ProfileConfiguration
from samlidp.security import USAGE_ENCRYPTION
from samlidp.security import Credential
from samlidp.security import XmlSecEncrypter
from samlidp.security import XmlSecSigner
from samlidp.status import success_status
from ..util import NOW
from ..util import FakeClock
from ..util import SequentialIds

IDP_ID = "https://idp.example.org/idp"
SP_ID = "https://sp.example"
SP_CERTIFICATE = "MIICsDCCAhmgAwIBAgIJAJrzqSSwmDY9"


class StubSecurityContext(object):
    """
    Stands in for the xmlsec1 calls of a pysaml2 SecurityContext. Signing
    returns the document unchanged, as bytes like xmlsec1 output, encryption
    returns fixed EncryptedData.
    """
    my_cert = "MIICsDCCAhmgAwIBAgIJAKnSigning"

    def __init__(self):
        self.signed = []
        self.templates = []

    def sign_statement(self, statement, node_name, node_id=None):
        self.signed.append((node_name, node_id))
        return statement.encode("utf-8") if isinstance(statement, str) else statement

    def encrypt_assertion(self, statement, enc_key, template, key_type="des-192", node_xpath=None):
        assert "Assertion" in statement
        carrier = Response(encrypted_assertion=[EncryptedAssertion(encrypted_data=EncryptedData(id="ED_assertion"))])
        return str(carrier)

    def encrypt(self, text, recv_key="", template="", key_type=""):
        self.templates.append((template, os.path.exists(template)))
        return str(EncryptedData(id="ED_name_id"))


class TestXmlSecCrypto:
    @pytest.fixture(autouse=True)
    def create_engine(self, monkeypatch):
        self.sec = StubSecurityContext()
        monkeypatch.setattr("samlidp.security._security_context", lambda **kwargs: self.sec)
        self.engine = CryptoPolicyEngine(XmlSecSigner(), XmlSecEncrypter())
        self.builder = AssertionBuilder(id_generator=SequentialIds(), clock=FakeClock())
        self.signing_credential = Credential(IDP_ID, cert_file="idp.crt", key_file="idp.key")
        self.encryption_credential = Credential(SP_ID, usage=USAGE_ENCRYPTION, certificate=SP_CERTIFICATE)

    def new_assertion(self):
        subject = AssertionBuilder.build_subject(NameID(text="abc", format=NAMEID_FORMAT_TRANSIENT), SCM_BEARER,
                                                 recipient="https://sp.example/acs/post")
        conditions = AssertionBuilder.build_conditions(NOW, ProfileConfiguration(ProfileKind.SAML2_SSO), SP_ID)
        return self.builder.build_assertion(IDP_ID, NOW, subject, conditions)

    def respond_with(self, assertion):
        return self.builder.build_response(IDP_ID, success_status(), destination="https://sp.example/acs/post",
                                           assertion=assertion)

    def test_signed_assertion_serializes(self):
        assertion = self.new_assertion()
        decision = CryptoDecision(sign_assertion=True, signing_credential=self.signing_credential)

        signed = self.engine.apply_to_assertion(decision, assertion)

        assert isinstance(signed, Assertion)
        assert signed.id == assertion.id
        assert signed.signature is not None
        assert self.sec.signed == [("urn:oasis:names:tc:SAML:2.0:assertion:Assertion", assertion.id)]

        response = response_from_string(str(self.respond_with(signed)))
        assert response.assertion[0].id == assertion.id
        assert response.assertion[0].signature is not None
        assert not response.encrypted_assertion

    def test_signing_needs_private_key(self):
        decision = CryptoDecision(sign_assertion=True, signing_credential=Credential(IDP_ID, cert_file="idp.crt"))
        with pytest.raises(SAMLIdPConfigurationError):
            self.engine.apply_to_assertion(decision, self.new_assertion())

    def test_encrypted_assertion_serializes(self):
        decision = CryptoDecision(encrypt_assertion=True, encryption_credential=self.encryption_credential)

        encrypted = self.engine.apply_to_assertion(decision, self.new_assertion())

        assert isinstance(encrypted, EncryptedAssertion)
        response = response_from_string(str(self.respond_with(encrypted)))
        assert not response.assertion
        assert response.encrypted_assertion[0].encrypted_data.id == "ED_assertion"

    def test_signed_then_encrypted_assertion_serializes(self):
        decision = CryptoDecision(sign_assertion=True, encrypt_assertion=True,
                                  signing_credential=self.signing_credential,
                                  encryption_credential=self.encryption_credential)

        encrypted = self.engine.apply_to_assertion(decision, self.new_assertion())

        assert isinstance(encrypted, EncryptedAssertion)
        assert len(self.sec.signed) == 1
        assert "EncryptedAssertion" in str(self.respond_with(encrypted))

    def test_encrypted_name_id(self):
        decision = CryptoDecision(encrypt_name_id=True, encryption_credential=self.encryption_credential)
        assertion = self.new_assertion()

        self.engine.apply_to_subject(decision, assertion.subject)

        assert assertion.subject.name_id is None
        assert isinstance(assertion.subject.encrypted_id, EncryptedID)
        assert assertion.subject.encrypted_id.encrypted_data.id == "ED_name_id"
        # the template reaches xmlsec1 as a file
        assert [exists for _, exists in self.sec.templates] == [True]
        assert "EncryptedID" in str(self.respond_with(assertion))
