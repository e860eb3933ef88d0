"""
Decides, per relying party and profile, whether assertions and NameIDs are
signed or encrypted, and with which credentials.
"""
import logging
from enum import Enum

from saml2.saml import NAMEID_FORMAT_ENCRYPTED

from .exception import ProfileError
from .security import Credential
from .security import USAGE_ENCRYPTION

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


class CryptoOperationRequirementLevel(Enum):
    ALWAYS = "always"
    CONDITIONAL = "conditional"
    NEVER = "never"

    @classmethod
    def parse(cls, value, default=None):
        """
        :type value: str | bool | CryptoOperationRequirementLevel | None
        :rtype: CryptoOperationRequirementLevel
        """
        if value is None:
            return default if default is not None else cls.CONDITIONAL
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.ALWAYS if value else cls.NEVER
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise ValueError("Unknown crypto requirement level '{}'".format(value)) from e


class CryptoDecision(object):
    """
    Outcome of the crypto policy for one response.
    """

    def __init__(self, sign_assertion=False, encrypt_assertion=False, encrypt_name_id=False,
                 signing_credential=None, encryption_credential=None):
        self.sign_assertion = sign_assertion
        self.encrypt_assertion = encrypt_assertion
        self.encrypt_name_id = encrypt_name_id
        self.signing_credential = signing_credential
        self.encryption_credential = encryption_credential

    def __repr__(self):
        return "CryptoDecision(sign_assertion={}, encrypt_assertion={}, encrypt_name_id={})".format(
            self.sign_assertion, self.encrypt_assertion, self.encrypt_name_id
        )


def is_required(level, binding_provides_guarantee):
    """
    :type level: CryptoOperationRequirementLevel
    :type binding_provides_guarantee: bool
    :rtype: bool
    """
    if level == CryptoOperationRequirementLevel.ALWAYS:
        return True
    if level == CryptoOperationRequirementLevel.NEVER:
        return False
    return not binding_provides_guarantee


class CryptoPolicyEngine(object):
    """
    Applies the requirement levels of a profile configuration to the
    outbound binding's guarantees.
    """

    def __init__(self, signer, encrypter):
        """
        :type signer: samlidp.security.Signer
        :type encrypter: samlidp.security.Encrypter
        """
        self.signer = signer
        self.encrypter = encrypter

    def decide(self, context, encoder, name_id_policy_format=None):
        """
        Works out what has to be done to the assertion of this response.

        :type context: samlidp.context.RequestContext
        :type encoder: samlidp.codec.MessageEncoder
        :type name_id_policy_format: str | None
        :rtype: CryptoDecision

        :param context: the request context; relying party and profile
            configuration must be populated
        :param encoder: the encoder of the chosen outbound binding
        :param name_id_policy_format: format requested in the NameIDPolicy
        :return: the decision, with credentials resolved
        """
        profile_config = context.require_profile_config()
        integrity = encoder.provides_message_integrity(context)
        confidentiality = encoder.provides_message_confidentiality(context)

        sign_level = profile_config.sign_assertions
        if (sign_level == CryptoOperationRequirementLevel.CONDITIONAL
                and context.peer_metadata is not None
                and context.peer_metadata.want_assertions_signed):
            sign_level = CryptoOperationRequirementLevel.ALWAYS

        name_id_level = profile_config.encrypt_name_ids
        if (name_id_policy_format == NAMEID_FORMAT_ENCRYPTED
                and name_id_level != CryptoOperationRequirementLevel.NEVER):
            name_id_level = CryptoOperationRequirementLevel.ALWAYS

        decision = CryptoDecision(
            sign_assertion=is_required(sign_level, integrity),
            encrypt_assertion=is_required(profile_config.encrypt_assertions, confidentiality),
            encrypt_name_id=is_required(name_id_level, confidentiality),
        )
        # an encrypted assertion already hides its NameID
        if decision.encrypt_assertion:
            decision.encrypt_name_id = False

        if decision.sign_assertion:
            decision.signing_credential = self.signing_credential(context)
        if decision.encrypt_assertion or decision.encrypt_name_id:
            decision.encryption_credential = self.encryption_credential(context)

        msg = "Crypto policy for {peer}: {decision}".format(peer=context.peer_entity_id, decision=decision)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return decision

    def signing_credential(self, context):
        """
        Profile signing credential, else the relying party default.

        :type context: samlidp.context.RequestContext
        :rtype: samlidp.security.Credential
        """
        credential = context.require_profile_config().signing_credential
        if credential is None:
            credential = context.require_relying_party_config().default_signing_credential
        if credential is None:
            raise ProfileError("No signing credential available for relying party {}".format(
                context.peer_entity_id))
        return credential

    def encryption_credential(self, context):
        """
        Resolves the peer's encryption certificate from its metadata.

        :type context: samlidp.context.RequestContext
        :rtype: samlidp.security.Credential
        """
        metadata = context.peer_metadata
        certificates = metadata.encryption_certificates if metadata is not None else []
        if not certificates:
            raise ProfileError("No encryption credential available for relying party {}".format(
                context.peer_entity_id))
        return Credential(entity_id=context.peer_entity_id, usage=USAGE_ENCRYPTION,
                          certificate=certificates[0])

    def apply_to_subject(self, decision, subject):
        """
        Replaces the subject's NameID by an EncryptedID when required.

        :type decision: CryptoDecision
        :type subject: saml2.saml.Subject
        """
        if decision.encrypt_name_id and subject is not None and subject.name_id is not None:
            subject.encrypted_id = self.encrypter.encrypt_name_id(subject.name_id,
                                                                  decision.encryption_credential)
            subject.name_id = None
        return subject

    def apply_to_assertion(self, decision, assertion):
        """
        Signs and/or encrypts the assertion.

        :type decision: CryptoDecision
        :type assertion: saml2.saml.Assertion
        :rtype: saml2.saml.Assertion | saml2.saml.EncryptedAssertion
        """
        if decision.sign_assertion:
            assertion = self.signer.sign_assertion(assertion, decision.signing_credential)
        if decision.encrypt_assertion:
            return self.encrypter.encrypt_assertion(assertion, decision.encryption_credential)
        return assertion
