"""
Binding codecs: decoding of inbound SAML messages and encoding of responses
to HTTP, one decoder/encoder per binding URI.
"""
import base64
import logging
import os
import time
from hashlib import sha1
from urllib.parse import urlencode

from saml2 import BINDING_HTTP_ARTIFACT
from saml2 import BINDING_HTTP_POST
from saml2 import BINDING_HTTP_REDIRECT
from saml2 import BINDING_PAOS
from saml2 import BINDING_SOAP
from saml2 import create_class_from_xml_string
from saml2 import element_to_extension_element
from saml2 import samlp
from saml2.entity import create_artifact
from saml2.pack import http_form_post_message
from saml2.pack import http_redirect_message
from saml2.pack import http_soap_message
from saml2.profile import ecp
from saml2.profile import paos
from saml2.s_utils import decode_base64_and_inflate
from saml2.schema import soapenv
from saml2.soap import class_instances_from_soap_enveloped_saml_thingies

from . import saml1
from .exception import MessageDecodingError
from .exception import UnknownBindingError
from .response import Response
from .response import SeeOther
from .response import ServiceError
from .store import ArtifactMapEntry

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

SOAP_CONTENT_TYPE = "application/soap+xml"


def make_saml_response(binding, http_args):
    """
    Creates an HTTP response from the output of a pysaml2 pack function.

    :param binding: SAML response binding
    :param http_args: http arguments
    :return: response.Response
    """
    if binding == BINDING_HTTP_REDIRECT:
        headers = dict(http_args["headers"])
        return SeeOther(str(headers["Location"]))
    elif binding in (BINDING_SOAP, BINDING_PAOS):
        return Response(http_args["data"], headers=http_args["headers"], content=SOAP_CONTENT_TYPE)

    return Response(http_args["data"], headers=http_args["headers"])


def soap_fault(message, fault_code="soap11:Server"):
    """
    A SOAP fault, for failures where no SAML response can be framed.

    :rtype: samlidp.response.Response
    """
    body = (
        '<soap11:Envelope xmlns:soap11="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap11:Body><soap11:Fault>"
        "<faultcode>{code}</faultcode><faultstring>{message}</faultstring>"
        "</soap11:Fault></soap11:Body></soap11:Envelope>"
    ).format(code=fault_code, message=message.replace("&", "&amp;").replace("<", "&lt;"))
    return ServiceError(body, content="text/xml")


class MessageDecoder(object):
    """
    Reads a SAML message off the transport.
    """
    binding = None

    def _saml_message(self, context, message_class):
        raise NotImplementedError()

    def decode(self, context, message_class):
        """
        :type context: samlidp.context.RequestContext
        :type message_class: type
        :rtype: (saml2.samlp.RequestAbstractType, str | None)

        :param context: request context with the transport request
        :param message_class: expected pysaml2 class of the message
        :return: the message and the relay state
        :raise MessageDecodingError: if the message can not be read
        """
        message, relay_state = self._saml_message(context, message_class)
        if not isinstance(message, message_class):
            raise MessageDecodingError("Expected {} but received {}".format(
                message_class.__name__, type(message).__name__))

        msg = "Decoded {type} {id} over {binding}".format(
            type=message_class.__name__, id=message.id, binding=self.binding)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return message, relay_state


class _FormDecoder(MessageDecoder):

    def _xml(self, encoded):
        raise NotImplementedError()

    def _saml_message(self, context, message_class):
        params = context.request or {}
        if "SAMLRequest" not in params:
            raise MessageDecodingError("No SAMLRequest parameter in request")
        try:
            xml = self._xml(params["SAMLRequest"])
            message = create_class_from_xml_string(message_class, xml)
        except Exception as e:
            raise MessageDecodingError("Unable to decode SAMLRequest: {}".format(e)) from e
        if message is None:
            raise MessageDecodingError("SAMLRequest does not hold a {}".format(message_class.__name__))
        return message, params.get("RelayState")


class HTTPPostDecoder(_FormDecoder):
    binding = BINDING_HTTP_POST

    def _xml(self, encoded):
        return base64.b64decode(encoded).decode("utf-8")


class HTTPRedirectDecoder(_FormDecoder):
    binding = BINDING_HTTP_REDIRECT

    def _xml(self, encoded):
        return decode_base64_and_inflate(encoded).decode("utf-8")


class SOAPDecoder(MessageDecoder):
    binding = BINDING_SOAP

    def _saml_message(self, context, message_class):
        body = (context.request or {}).get("body")
        if not body:
            raise MessageDecodingError("Empty SOAP request")
        try:
            parts = class_instances_from_soap_enveloped_saml_thingies(body, [paos, ecp, samlp, saml1])
        except Exception as e:
            raise MessageDecodingError("Malformed SOAP envelope: {}".format(e)) from e

        relay_state = None
        for item in parts.get("header", []):
            if item.c_tag == "RelayState" and item.c_namespace == ecp.NAMESPACE:
                relay_state = item.text
        return parts.get("body"), relay_state


class MessageEncoder(object):
    """
    Puts a SAML message on the transport.
    """
    binding = None

    def provides_message_integrity(self, context):
        return False

    def provides_message_confidentiality(self, context):
        return False

    def encode(self, context, message, endpoint, relay_state=None):
        """
        :type context: samlidp.context.RequestContext
        :type message: saml2.samlp.StatusResponseType
        :type endpoint: samlidp.metadata.Endpoint
        :type relay_state: str | None
        :rtype: samlidp.response.Response
        """
        raise NotImplementedError()


class HTTPPostEncoder(MessageEncoder):
    binding = BINDING_HTTP_POST

    def encode(self, context, message, endpoint, relay_state=None):
        http_args = http_form_post_message(str(message), endpoint.location, relay_state or "",
                                           typ="SAMLResponse")
        return make_saml_response(self.binding, http_args)


class HTTPRedirectEncoder(MessageEncoder):
    binding = BINDING_HTTP_REDIRECT

    def encode(self, context, message, endpoint, relay_state=None):
        http_args = http_redirect_message(str(message), endpoint.location, relay_state or "",
                                          typ="SAMLResponse")
        return make_saml_response(self.binding, http_args)


class SOAPEncoder(MessageEncoder):
    """
    Synchronous back channel. The channel is as trustworthy as the transport
    it runs on.
    """
    binding = BINDING_SOAP

    def provides_message_integrity(self, context):
        return bool(context.secure)

    def provides_message_confidentiality(self, context):
        return bool(context.secure)

    def encode(self, context, message, endpoint, relay_state=None):
        return make_saml_response(self.binding, http_soap_message(message))


class PAOSEncoder(MessageEncoder):
    """
    ECP response: the SAML response in a SOAP body, with an ecp:Response
    header telling the client where to deliver it. The client relays the
    message, so the channel guarantees nothing towards the SP.
    """
    binding = BINDING_PAOS

    def encode(self, context, message, endpoint, relay_state=None):
        header = soapenv.Header()
        header.extension_elements = [element_to_extension_element(
            ecp.Response(assertion_consumer_service_url=endpoint.location))]
        body = soapenv.Body()
        body.extension_elements = [element_to_extension_element(message)]
        envelope = soapenv.Envelope(header=header, body=body)
        http_args = {"headers": [("Content-Type", SOAP_CONTENT_TYPE)], "data": str(envelope)}
        return make_saml_response(self.binding, http_args)


class HTTPArtifactEncoder(MessageEncoder):
    """
    Stores the message in the artifact store and sends the browser to the SP
    with the artifact.
    """
    binding = BINDING_HTTP_ARTIFACT

    def __init__(self, artifact_store, artifact_lifetime=60, clock=None):
        self.artifact_store = artifact_store
        self.artifact_lifetime = artifact_lifetime
        self.clock = clock or time.time

    def encode(self, context, message, endpoint, relay_state=None):
        issuer_id = context.require_local_entity_id()
        message_handle = sha1(str(message).encode("utf-8"))
        message_handle.update(os.urandom(16))
        artifact = create_artifact(issuer_id, message_handle.digest(), int(endpoint.index or 0))
        self.artifact_store.put(ArtifactMapEntry(
            artifact=artifact,
            issuer_id=issuer_id,
            relying_party_id=context.peer_entity_id,
            message=str(message),
            expiration=int(self.clock()) + self.artifact_lifetime,
        ))

        msg = "Stored artifact for {rp}, message {id}".format(rp=context.peer_entity_id, id=message.id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        params = {"SAMLart": artifact}
        if relay_state:
            params["RelayState"] = relay_state
        separator = "&" if "?" in endpoint.location else "?"
        return SeeOther("{}{}{}".format(endpoint.location, separator, urlencode(params)))


class BindingCodecRegistry(object):
    """
    Decoders and encoders keyed by binding URI.
    """

    def __init__(self, decoders=None, encoders=None):
        self.decoders = {d.binding: d for d in decoders or []}
        self.encoders = {e.binding: e for e in encoders or []}

    def decoder(self, binding):
        try:
            return self.decoders[binding]
        except KeyError as e:
            raise UnknownBindingError(binding) from e

    def encoder(self, binding):
        try:
            return self.encoders[binding]
        except KeyError as e:
            raise UnknownBindingError(binding) from e

    @property
    def outbound_bindings(self):
        return list(self.encoders)

    @classmethod
    def default(cls, artifact_store=None, artifact_lifetime=60, clock=None):
        encoders = [HTTPPostEncoder(), HTTPRedirectEncoder(), SOAPEncoder(), PAOSEncoder()]
        if artifact_store is not None:
            encoders.append(HTTPArtifactEncoder(artifact_store, artifact_lifetime, clock=clock))
        return cls(
            decoders=[HTTPPostDecoder(), HTTPRedirectDecoder(), SOAPDecoder()],
            encoders=encoders,
        )
