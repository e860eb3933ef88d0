"""
Selection of the endpoint a response is delivered to.
"""
import logging

from saml2 import BINDING_PAOS
from saml2 import BINDING_SOAP
from saml2.samlp import STATUS_REQUEST_DENIED
from saml2.samlp import STATUS_REQUESTER

from .exception import AuthenticationRequestError
from .metadata import Endpoint

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

SYNCHRONOUS_BINDINGS = (BINDING_SOAP, BINDING_PAOS)


class EndpointSelector(object):
    """
    Picks the endpoint for a response. The first rule that yields an endpoint
    wins:

    1. an explicitly requested destination, validated against metadata
    2. the synchronous channel the request came in on
    3. the SP's default endpoint, else its first endpoint with a binding the
       IdP can send over
    """

    def __init__(self, supported_bindings):
        """
        :type supported_bindings: list[str]
        :param supported_bindings: outbound bindings the IdP can encode, in order of preference
        """
        self.supported_bindings = list(supported_bindings)

    @staticmethod
    def _malformed(message):
        return AuthenticationRequestError(message, status_code=STATUS_REQUESTER)

    @staticmethod
    def _no_endpoint(message):
        return AuthenticationRequestError(message, status_code=STATUS_REQUESTER,
                                          sub_status_code=STATUS_REQUEST_DENIED)

    def select(self, context, acs_url=None, acs_index=None, binding=None):
        """
        :type context: samlidp.context.RequestContext
        :type acs_url: str | None
        :type acs_index: int | str | None
        :type binding: str | None
        :rtype: samlidp.metadata.Endpoint

        :param context: request context, peer metadata populated
        :param acs_url: requested location (AssertionConsumerServiceURL or shire)
        :param acs_index: requested AssertionConsumerServiceIndex
        :param binding: requested ProtocolBinding
        :return: the endpoint
        """
        if acs_url is not None and acs_index is not None:
            raise self._malformed("Request specified both AssertionConsumerServiceURL and Index")

        endpoints = context.peer_metadata.assertion_consumer_services if context.peer_metadata else []

        if acs_index is not None:
            endpoint = self._by_index(endpoints, acs_index, binding)
        elif acs_url is not None:
            endpoint = self._by_location(endpoints, acs_url, binding)
        elif context.inbound_binding in SYNCHRONOUS_BINDINGS:
            endpoint = Endpoint(location=None, binding=context.inbound_binding)
        else:
            endpoint = self._from_metadata(endpoints, binding)

        if endpoint is None:
            raise self._no_endpoint("No endpoint available for relying party {}".format(
                context.peer_entity_id))

        msg = "Selected endpoint {endpoint} for {peer}".format(endpoint=endpoint, peer=context.peer_entity_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return endpoint

    def _by_index(self, endpoints, acs_index, binding):
        try:
            acs_index = int(acs_index)
        except (TypeError, ValueError) as e:
            raise self._malformed("Malformed AssertionConsumerServiceIndex {}".format(acs_index)) from e

        for endpoint in endpoints:
            if endpoint.index == acs_index:
                if binding is not None and endpoint.binding != binding:
                    raise self._malformed("AssertionConsumerServiceIndex {} does not use ProtocolBinding {}".format(
                        acs_index, binding))
                if endpoint.binding not in self.supported_bindings:
                    return None
                return endpoint
        raise self._malformed("AssertionConsumerServiceIndex {} not present in metadata".format(acs_index))

    def _by_location(self, endpoints, location, binding):
        for endpoint in endpoints:
            if endpoint.location != location:
                continue
            if binding is not None and endpoint.binding != binding:
                continue
            if endpoint.binding in self.supported_bindings:
                return endpoint
        logger.warning("Requested endpoint {} ({}) not found in metadata".format(location, binding))
        return None

    def _from_metadata(self, endpoints, binding):
        candidates = [e for e in endpoints if binding is None or e.binding == binding]
        for endpoint in candidates:
            if endpoint.is_default and endpoint.binding in self.supported_bindings:
                return endpoint
        for endpoint in candidates:
            if endpoint.binding in self.supported_bindings:
                return endpoint
        return None
