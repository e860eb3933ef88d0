"""
Construction of assertions and protocol responses.

The identifier generator and the clock are injected so that every flow can
be driven deterministically.
"""
import logging
import time
from datetime import datetime
from datetime import timezone

from saml2 import VERSION
from saml2.s_utils import sid
from saml2.saml import NAMEID_FORMAT_ENTITY
from saml2.saml import SCM_BEARER
from saml2.saml import Assertion
from saml2.saml import Audience
from saml2.saml import AudienceRestriction
from saml2.saml import AuthnContext
from saml2.saml import AuthnContextClassRef
from saml2.saml import AuthnContextDeclRef
from saml2.saml import AuthnStatement
from saml2.saml import Conditions
from saml2.saml import Issuer
from saml2.saml import ProxyRestriction
from saml2.saml import Subject
from saml2.saml import SubjectConfirmation
from saml2.saml import SubjectConfirmationData
from saml2.saml import SubjectLocality
from saml2.samlp import Response


logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def instant(epoch_seconds):
    """
    Formats epoch seconds as a SAML dateTime, truncated to whole seconds.

    :type epoch_seconds: int | float
    :rtype: str
    """
    return datetime.fromtimestamp(int(epoch_seconds), tz=timezone.utc).strftime(TIME_FORMAT)


def parse_instant(value):
    """
    :type value: str
    :rtype: int
    """
    if "." in value:
        value = value.split(".")[0] + "Z"
    parsed = datetime.strptime(value, TIME_FORMAT).replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


class AssertionBuilder(object):
    """
    Builds the SAML objects common to every profile.
    """

    def __init__(self, id_generator=None, clock=None):
        """
        :type id_generator: () -> str
        :type clock: () -> float

        :param id_generator: returns a fresh XML ID
        :param clock: returns the current time in epoch seconds
        """
        self.id_generator = id_generator or sid
        self.clock = clock or time.time

    def now(self):
        return int(self.clock())

    def new_id(self):
        return self.id_generator()

    @staticmethod
    def build_issuer(entity_id):
        return Issuer(text=entity_id, format=NAMEID_FORMAT_ENTITY)

    @staticmethod
    def build_conditions(issue_instant, profile_config, relying_party_id):
        """
        NotBefore is the issue instant, NotOnOrAfter the issue instant plus
        the assertion lifetime. The audience always holds the requester.

        :type issue_instant: int
        :type profile_config: samlidp.relying_party.ProfileConfiguration
        :type relying_party_id: str
        :rtype: saml2.saml.Conditions
        """
        audiences = [relying_party_id] + [a for a in profile_config.audiences if a != relying_party_id]
        conditions = Conditions(
            not_before=instant(issue_instant),
            not_on_or_after=instant(issue_instant + profile_config.assertion_lifetime),
            audience_restriction=[AudienceRestriction(audience=[Audience(text=a) for a in audiences])],
        )
        if profile_config.proxy_audiences:
            proxy_restriction = ProxyRestriction(
                audience=[Audience(text=a) for a in profile_config.proxy_audiences]
            )
            if profile_config.proxy_count is not None:
                proxy_restriction.count = str(profile_config.proxy_count)
            conditions.proxy_restriction = [proxy_restriction]
        return conditions

    @staticmethod
    def build_subject(name_id, confirmation_method, recipient=None, in_response_to=None,
                      not_on_or_after=None, address=None):
        """
        :type name_id: saml2.saml.NameID | None
        :type confirmation_method: str
        :rtype: saml2.saml.Subject
        """
        data = None
        if confirmation_method == SCM_BEARER:
            data = SubjectConfirmationData(
                address=address,
                in_response_to=in_response_to,
                not_on_or_after=instant(not_on_or_after) if not_on_or_after is not None else None,
                recipient=recipient,
            )
        return Subject(
            name_id=name_id,
            subject_confirmation=[SubjectConfirmation(method=confirmation_method,
                                                      subject_confirmation_data=data)],
        )

    @staticmethod
    def build_authn_statement(authn_instant, class_ref=None, decl_ref=None, session_index=None,
                              session_not_on_or_after=None, address=None):
        """
        :type authn_instant: int
        :type class_ref: str | None
        :type decl_ref: str | None
        :rtype: saml2.saml.AuthnStatement
        """
        authn_context = AuthnContext()
        if decl_ref:
            authn_context.authn_context_decl_ref = AuthnContextDeclRef(text=decl_ref)
        elif class_ref:
            authn_context.authn_context_class_ref = AuthnContextClassRef(text=class_ref)

        statement = AuthnStatement(
            authn_instant=instant(authn_instant),
            session_index=session_index,
            authn_context=authn_context,
        )
        if session_not_on_or_after is not None:
            statement.session_not_on_or_after = instant(session_not_on_or_after)
        if address:
            statement.subject_locality = SubjectLocality(address=address)
        return statement

    def build_assertion(self, issuer_id, issue_instant, subject, conditions, authn_statement=None,
                        attribute_statement=None):
        """
        :rtype: saml2.saml.Assertion
        """
        assertion = Assertion(
            id=self.new_id(),
            version=VERSION,
            issue_instant=instant(issue_instant),
            issuer=self.build_issuer(issuer_id),
            subject=subject,
            conditions=conditions,
        )
        if authn_statement is not None:
            assertion.authn_statement = [authn_statement]
        if attribute_statement is not None:
            assertion.attribute_statement = [attribute_statement]
        return assertion

    def build_response(self, issuer_id, status, in_response_to=None, destination=None,
                       assertion=None, response_class=Response):
        """
        Builds a status response. Any assertion is placed in the element
        matching its type, plain or encrypted.

        :type issuer_id: str
        :type status: saml2.samlp.Status
        :rtype: saml2.samlp.StatusResponseType
        """
        response = response_class(
            id=self.new_id(),
            version=VERSION,
            issue_instant=instant(self.now()),
            issuer=self.build_issuer(issuer_id),
            status=status,
        )
        if in_response_to:
            response.in_response_to = in_response_to
        if destination:
            response.destination = destination
        if assertion is not None:
            if isinstance(assertion, Assertion):
                response.assertion = [assertion]
            else:
                response.encrypted_assertion = [assertion]
        return response
