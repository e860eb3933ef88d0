"""
SAML2 Attribute Query over the SOAP back channel.
"""
import logging

from saml2 import BINDING_SOAP
from saml2.saml import SCM_SENDER_VOUCHES
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import AttributeQuery

from ..attribute_authority import SAML2StringAttributeEncoder
from ..context import DecodedRequest
from ..context import ProfileKind
from ..context import ReadyResponse
from ..context import RequestContext
from ..context import ResolvedPrincipal
from ..exception import AttributeRequestError
from ..status import success_status
from .base import ProfileHandler
from .base import issuer_of

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)


def requested_attribute_ids(query, attributes):
    """
    Maps the attributes named in a query to attribute ids. A query attribute
    matches an attribute by id or by the name it is encoded under.

    :type query: saml2.samlp.AttributeQuery
    :type attributes: dict[str, samlidp.attribute_authority.IdPAttribute]
    :rtype: list[str] | None
    :return: the ids, or None when the query names no attributes
    """
    if not query.attribute:
        return None
    names = {attr.name for attr in query.attribute}
    requested = []
    for attr_id, attribute in attributes.items():
        encoder = attribute.encoder_of(SAML2StringAttributeEncoder)
        if attr_id in names or (encoder is not None and encoder.name in names):
            requested.append(attr_id)
    return requested


class AttributeQueryProfileHandler(ProfileHandler):
    kind = ProfileKind.SAML2_ATTRIBUTE_QUERY
    message_class = AttributeQuery

    def register_endpoints(self):
        path = self.config.get("endpoint", "SAML2/SOAP/AttributeQuery")
        return [("^{}$".format(path), self.handle_soap)]

    def handle_soap(self, context):
        context.inbound_binding = BINDING_SOAP
        return self.handle(context)

    def decode(self, context):
        query, _ = self.services.codecs.decoder(BINDING_SOAP).decode(context, self.message_class)
        return DecodedRequest(query, issuer_of(query), BINDING_SOAP)

    def populate_context(self, context):
        super().populate_context(context)
        context.decorate(RequestContext.KEY_ATTRIBUTE_QUERY, context.inbound_message)

    def resolve_principal(self, context, query):
        """
        Resolves the principal of the query subject and attaches the user's
        latest session, if any.

        :rtype: samlidp.context.ResolvedPrincipal
        """
        if query.subject is None or query.subject.name_id is None:
            raise AttributeRequestError("Attribute query has no Subject", status_code=STATUS_REQUESTER)

        authority = self.services.attribute_authority
        principal = authority.get_principal(context, query.subject.name_id)
        context.decorate(RequestContext.KEY_REQUESTED_NAME_ID, query.subject.name_id)

        session = self.services.session_storage.get_session_by_principal(principal)
        method = None
        if session is not None:
            info = session.authn_method_for(context.peer_entity_id) or session.latest_authn_method()
            method = info.authentication_method if info is not None else None
        return ResolvedPrincipal(principal, authentication_method=method, session=session)

    def build_response(self, context):
        services = self.services
        builder = services.assertion_builder
        query = context.inbound_message
        profile_config = context.require_profile_config()

        endpoint = context.peer_endpoint = self.select_endpoint(context)
        self.resolve_principal(context, query).apply(context)

        resolved = services.attribute_authority.resolver.resolve_attributes(context)
        requested = requested_attribute_ids(query, resolved)
        context.decorate(RequestContext.KEY_REQUESTED_ATTRIBUTES, requested)
        released = services.attribute_authority.get_attributes(
            context, requested_names=requested, resolved=resolved)

        msg = "Releasing {attrs} about {principal} to {rp}".format(
            attrs=sorted(released), principal=context.principal_name, rp=context.peer_entity_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.info(logline)

        now = builder.now()
        decision = services.crypto_policy.decide(context, services.codecs.encoder(endpoint.binding))
        subject = builder.build_subject(query.subject.name_id, SCM_SENDER_VOUCHES)
        services.crypto_policy.apply_to_subject(decision, subject)

        assertion = builder.build_assertion(
            context.require_local_entity_id(),
            now,
            subject,
            builder.build_conditions(now, profile_config, context.require_inbound_issuer()),
            attribute_statement=services.attribute_authority.build_attribute_statement(released),
        )
        assertion = services.crypto_policy.apply_to_assertion(decision, assertion)
        response = builder.build_response(
            context.local_entity_id,
            success_status(),
            in_response_to=query.id,
            assertion=assertion,
        )
        return ReadyResponse(response, endpoint)
