"""
Credentials and the signing/encryption primitives used by the crypto policy.

The engine only decides *whether* to sign or encrypt. The work itself is done
by a Signer and an Encrypter; the default ones drive xmlsec1 through pysaml2.
"""
import logging

from saml2.saml import EncryptedAssertion
from saml2.saml import EncryptedID
from saml2.saml import assertion_from_string
from saml2.samlp import Response
from saml2.samlp import response_from_string
from saml2.sigver import CryptoBackendXmlSec1
from saml2.sigver import SecurityContext
from saml2.sigver import class_name
from saml2.sigver import get_xmlsec_binary
from saml2.sigver import make_temp
from saml2.sigver import pem_format
from saml2.sigver import pre_encryption_part
from saml2.sigver import pre_signature_part
from saml2.sigver import signed_instance_factory
from saml2.xmlenc import encrypted_data_from_string

from .exception import SAMLIdPConfigurationError
from .exception import SAMLIdPError


logger = logging.getLogger(__name__)

USAGE_SIGNING = "signing"
USAGE_ENCRYPTION = "encryption"


class Credential(object):
    """
    Key material of an entity.

    A signing credential points at PEM files on disk. An encryption
    credential of a peer usually only carries the base64 certificate found in
    its metadata.
    """

    def __init__(self, entity_id=None, usage=USAGE_SIGNING, cert_file=None, key_file=None,
                 certificate=None):
        """
        :type entity_id: str
        :type usage: str
        :type cert_file: str
        :type key_file: str
        :type certificate: str

        :param entity_id: owner of the credential
        :param usage: signing or encryption
        :param cert_file: path to a PEM certificate
        :param key_file: path to a PEM private key
        :param certificate: base64 DER certificate, as found in metadata
        """
        self.entity_id = entity_id
        self.usage = usage
        self.cert_file = cert_file
        self.key_file = key_file
        self.certificate = certificate

    @classmethod
    def from_config(cls, config, entity_id=None):
        if not config:
            return None
        if "cert_file" not in config and "certificate" not in config:
            raise SAMLIdPConfigurationError("Credential needs 'cert_file' or 'certificate'")
        return cls(
            entity_id=entity_id,
            usage=config.get("usage", USAGE_SIGNING),
            cert_file=config.get("cert_file"),
            key_file=config.get("key_file"),
            certificate=config.get("certificate"),
        )

    def __repr__(self):
        return "Credential(entity_id={!r}, usage={!r})".format(self.entity_id, self.usage)


class Signer(object):
    """
    Signs assertions.
    """

    def sign_assertion(self, assertion, credential):
        """
        :type assertion: saml2.saml.Assertion
        :type credential: Credential
        :rtype: saml2.saml.Assertion

        :param assertion: the assertion to sign
        :param credential: the signing credential
        :return: the signed assertion
        """
        raise NotImplementedError()


class Encrypter(object):
    """
    Encrypts assertions and NameIDs for a peer.
    """

    def encrypt_assertion(self, assertion, credential):
        """
        :type assertion: saml2.saml.Assertion
        :type credential: Credential
        :rtype: saml2.saml.EncryptedAssertion
        """
        raise NotImplementedError()

    def encrypt_name_id(self, name_id, credential):
        """
        :type name_id: saml2.saml.NameID
        :type credential: Credential
        :rtype: saml2.saml.EncryptedID
        """
        raise NotImplementedError()


def _security_context(key_file=None, cert_file=None, xmlsec_binary=None):
    xmlsec_binary = xmlsec_binary or get_xmlsec_binary()
    crypto = CryptoBackendXmlSec1(xmlsec_binary)
    return SecurityContext(crypto, key_file=key_file, cert_file=cert_file)


class XmlSecSigner(Signer):
    """
    Enveloped XML signatures made by xmlsec1.
    """

    def __init__(self, sign_alg=None, digest_alg=None, xmlsec_binary=None):
        self.sign_alg = sign_alg
        self.digest_alg = digest_alg
        self.xmlsec_binary = xmlsec_binary
        self._contexts = {}

    def _context_for(self, credential):
        key = (credential.key_file, credential.cert_file)
        if key not in self._contexts:
            self._contexts[key] = _security_context(
                key_file=credential.key_file,
                cert_file=credential.cert_file,
                xmlsec_binary=self.xmlsec_binary,
            )
        return self._contexts[key]

    def sign_assertion(self, assertion, credential):
        if not credential.key_file:
            raise SAMLIdPConfigurationError("Signing credential of {} has no private key".format(
                credential.entity_id))

        sec = self._context_for(credential)
        assertion.signature = pre_signature_part(
            assertion.id, sec.my_cert, 1, sign_alg=self.sign_alg, digest_alg=self.digest_alg
        )
        signed_xml = signed_instance_factory(assertion, sec, [(class_name(assertion), assertion.id)])
        # xmlsec hands back the document text, the response builder needs the element
        return assertion_from_string(signed_xml)


class XmlSecEncrypter(Encrypter):
    """
    XML encryption made by xmlsec1 with the peer's certificate.
    """

    def __init__(self, xmlsec_binary=None):
        self.sec = _security_context(xmlsec_binary=xmlsec_binary)

    @staticmethod
    def _certificate_file(credential):
        if credential.cert_file:
            return credential.cert_file, None
        tmp = make_temp(pem_format(credential.certificate), decode=False)
        return tmp.name, tmp

    def encrypt_assertion(self, assertion, credential):
        cert_file, tmp = self._certificate_file(credential)
        carrier = Response(encrypted_assertion=EncryptedAssertion())
        carrier.encrypted_assertion.add_extension_element(assertion)
        template = pre_encryption_part(encrypt_cert=credential.certificate)
        encrypted_xml = self.sec.encrypt_assertion(str(carrier), cert_file, template)
        logger.debug("Encrypted assertion {} for {}".format(assertion.id, credential.entity_id))
        del tmp
        encrypted = response_from_string(encrypted_xml).encrypted_assertion
        if not encrypted:
            raise SAMLIdPError("Encryption of assertion {} gave no EncryptedAssertion".format(assertion.id))
        return encrypted[0]

    def encrypt_name_id(self, name_id, credential):
        cert_file, tmp = self._certificate_file(credential)
        # xmlsec reads the template from a file
        template = make_temp(str(pre_encryption_part(encrypt_cert=credential.certificate)), decode=False)
        encrypted_xml = self.sec.encrypt(str(name_id), cert_file, template.name, "des-192")
        del tmp, template
        return EncryptedID(encrypted_data=encrypted_data_from_string(encrypted_xml))
