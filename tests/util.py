"""
Collaborators and message factories shared by the tests.
"""
import itertools

from saml2 import VERSION
from saml2 import xmldsig
from saml2.pack import http_soap_message
from saml2.s_utils import deflate_and_base64_encode
from saml2.saml import EncryptedAssertion
from saml2.saml import EncryptedID
from saml2.saml import Issuer
from saml2.saml import NAMEID_FORMAT_ENTITY
from saml2.samlp import ArtifactResolve
from saml2.samlp import Artifact
from saml2.samlp import AttributeQuery
from saml2.samlp import AuthnRequest

from samlidp import saml1
from samlidp.assertion import instant
from samlidp.security import Encrypter
from samlidp.security import Signer

NOW = 1700000000


class FakeSigner(Signer):
    """
    Marks assertions as signed without doing any cryptography.
    """

    def __init__(self):
        self.signed = []

    def sign_assertion(self, assertion, credential):
        assertion.signature = xmldsig.Signature()
        self.signed.append((assertion.id, credential))
        return assertion


class FakeEncrypter(Encrypter):
    """
    Replaces assertions and NameIDs by empty encrypted elements.
    """

    def __init__(self):
        self.encrypted_assertions = []
        self.encrypted_name_ids = []

    def encrypt_assertion(self, assertion, credential):
        self.encrypted_assertions.append((assertion.id, credential))
        return EncryptedAssertion()

    def encrypt_name_id(self, name_id, credential):
        self.encrypted_name_ids.append((name_id.text, credential))
        return EncryptedID()


class FakeClock(object):
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class SequentialIds(object):
    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self):
        return "_id{}".format(next(self._counter))


def authn_request(issuer, request_id="_request1", **kwargs):
    return AuthnRequest(
        id=request_id,
        version=kwargs.pop("version", VERSION),
        issue_instant=instant(NOW),
        issuer=Issuer(text=issuer, format=NAMEID_FORMAT_ENTITY),
        **kwargs
    )


def attribute_query(issuer, subject, request_id="_query1", **kwargs):
    return AttributeQuery(
        id=request_id,
        version=VERSION,
        issue_instant=instant(NOW),
        issuer=Issuer(text=issuer, format=NAMEID_FORMAT_ENTITY),
        subject=subject,
        **kwargs
    )


def artifact_resolve(issuer, artifact, request_id="_resolve1"):
    return ArtifactResolve(
        id=request_id,
        version=VERSION,
        issue_instant=instant(NOW),
        issuer=Issuer(text=issuer, format=NAMEID_FORMAT_ENTITY),
        artifact=Artifact(text=artifact),
    )


def saml1_request(artifacts, request_id="_request1", major_version="1", minor_version="1"):
    return saml1.Request(
        id=request_id,
        major_version=major_version,
        minor_version=minor_version,
        issue_instant=instant(NOW),
        assertion_artifact=[saml1.AssertionArtifact(text=artifact) for artifact in artifacts],
    )


def redirect_params(message, relay_state=None):
    params = {"SAMLRequest": deflate_and_base64_encode(str(message)).decode("utf-8")}
    if relay_state:
        params["RelayState"] = relay_state
    return params


def soap_body(message):
    data = http_soap_message(message)["data"]
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return data
