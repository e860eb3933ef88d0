"""
The part of the SAML 1.1 protocol schema the IdP speaks: artifact resolution
requests and the responses to them, in the object model pysaml2 uses for
SAML 2.0.
"""
from xml.etree import ElementTree

import saml2
from saml2 import SamlBase
from saml2.samlp import STATUS_REQUEST_DENIED
from saml2.samlp import STATUS_REQUEST_VERSION_DEPRECATED
from saml2.samlp import STATUS_REQUEST_VERSION_TOO_HIGH
from saml2.samlp import STATUS_REQUEST_VERSION_TOO_LOW
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER
from saml2.samlp import STATUS_SUCCESS
from saml2.samlp import STATUS_VERSION_MISMATCH

from .status import status_codes

NAMESPACE = "urn:oasis:names:tc:SAML:1.0:protocol"
# StatusCode values are QNames in this namespace
PREFIX = "saml1p"
ElementTree.register_namespace(PREFIX, NAMESPACE)

MAJOR_VERSION = "1"
MINOR_VERSION = "1"

STATUS1_SUCCESS = PREFIX + ":Success"
STATUS1_REQUESTER = PREFIX + ":Requester"
STATUS1_RESPONDER = PREFIX + ":Responder"
STATUS1_VERSION_MISMATCH = PREFIX + ":VersionMismatch"
STATUS1_REQUEST_DENIED = PREFIX + ":RequestDenied"
STATUS1_REQUEST_VERSION_TOO_HIGH = PREFIX + ":RequestVersionTooHigh"
STATUS1_REQUEST_VERSION_TOO_LOW = PREFIX + ":RequestVersionTooLow"
STATUS1_REQUEST_VERSION_DEPRECATED = PREFIX + ":RequestVersionDeprecated"

_TOP_LEVEL_CODES = {
    STATUS_SUCCESS: STATUS1_SUCCESS,
    STATUS_REQUESTER: STATUS1_REQUESTER,
    STATUS_RESPONDER: STATUS1_RESPONDER,
    STATUS_VERSION_MISMATCH: STATUS1_VERSION_MISMATCH,
}
_SECOND_LEVEL_CODES = {
    STATUS_REQUEST_DENIED: STATUS1_REQUEST_DENIED,
    STATUS_REQUEST_VERSION_TOO_HIGH: STATUS1_REQUEST_VERSION_TOO_HIGH,
    STATUS_REQUEST_VERSION_TOO_LOW: STATUS1_REQUEST_VERSION_TOO_LOW,
    STATUS_REQUEST_VERSION_DEPRECATED: STATUS1_REQUEST_VERSION_DEPRECATED,
}


class AssertionArtifact(SamlBase):
    """The urn:oasis:names:tc:SAML:1.0:protocol:AssertionArtifact element"""

    c_tag = "AssertionArtifact"
    c_namespace = NAMESPACE
    c_value_type = {"base": "string"}
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()


def assertion_artifact_from_string(xml_string):
    return saml2.create_class_from_xml_string(AssertionArtifact, xml_string)


class StatusMessage(SamlBase):
    """The urn:oasis:names:tc:SAML:1.0:protocol:StatusMessage element"""

    c_tag = "StatusMessage"
    c_namespace = NAMESPACE
    c_value_type = {"base": "string"}
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()


def status_message_from_string(xml_string):
    return saml2.create_class_from_xml_string(StatusMessage, xml_string)


class StatusCode(SamlBase):
    """The urn:oasis:names:tc:SAML:1.0:protocol:StatusCode element"""

    c_tag = "StatusCode"
    c_namespace = NAMESPACE
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()
    c_attributes["Value"] = ("value", "QName", True)
    c_cardinality["status_code"] = {"min": 0, "max": 1}
    c_child_order.extend(["status_code"])

    def __init__(self, status_code=None, value=None, text=None, extension_elements=None,
                 extension_attributes=None):
        SamlBase.__init__(self, text=text, extension_elements=extension_elements,
                          extension_attributes=extension_attributes)
        self.status_code = status_code
        self.value = value


StatusCode.c_children["{%s}StatusCode" % NAMESPACE] = ("status_code", StatusCode)


def status_code_from_string(xml_string):
    return saml2.create_class_from_xml_string(StatusCode, xml_string)


class Status(SamlBase):
    """The urn:oasis:names:tc:SAML:1.0:protocol:Status element"""

    c_tag = "Status"
    c_namespace = NAMESPACE
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()
    c_children["{%s}StatusCode" % NAMESPACE] = ("status_code", StatusCode)
    c_children["{%s}StatusMessage" % NAMESPACE] = ("status_message", StatusMessage)
    c_cardinality["status_message"] = {"min": 0, "max": 1}
    c_child_order.extend(["status_code", "status_message"])

    def __init__(self, status_code=None, status_message=None, text=None, extension_elements=None,
                 extension_attributes=None):
        SamlBase.__init__(self, text=text, extension_elements=extension_elements,
                          extension_attributes=extension_attributes)
        self.status_code = status_code
        self.status_message = status_message


def status_from_string(xml_string):
    return saml2.create_class_from_xml_string(Status, xml_string)


class Request(SamlBase):
    """
    The urn:oasis:names:tc:SAML:1.0:protocol:Request element, with the
    AssertionArtifact form of the query only. RequestID is kept as ``id``
    like the ID of a SAML 2.0 request.
    """

    c_tag = "Request"
    c_namespace = NAMESPACE
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()
    c_children["{%s}AssertionArtifact" % NAMESPACE] = ("assertion_artifact", [AssertionArtifact])
    c_cardinality["assertion_artifact"] = {"min": 0}
    c_attributes["RequestID"] = ("id", "ID", True)
    c_attributes["MajorVersion"] = ("major_version", "integer", True)
    c_attributes["MinorVersion"] = ("minor_version", "integer", True)
    c_attributes["IssueInstant"] = ("issue_instant", "dateTime", True)
    c_child_order.extend(["assertion_artifact"])

    def __init__(self, assertion_artifact=None, id=None, major_version=None, minor_version=None,
                 issue_instant=None, text=None, extension_elements=None, extension_attributes=None):
        SamlBase.__init__(self, text=text, extension_elements=extension_elements,
                          extension_attributes=extension_attributes)
        self.assertion_artifact = assertion_artifact or []
        self.id = id
        self.major_version = major_version
        self.minor_version = minor_version
        self.issue_instant = issue_instant

    @property
    def version(self):
        """``major.minor``, the form SAML 2.0 messages carry their version in."""
        return "{}.{}".format(self.major_version, self.minor_version)


def request_from_string(xml_string):
    return saml2.create_class_from_xml_string(Request, xml_string)


class Response(SamlBase):
    """
    The urn:oasis:names:tc:SAML:1.0:protocol:Response element. ResponseID is
    kept as ``id``; the assertions travel as extension elements.
    """

    c_tag = "Response"
    c_namespace = NAMESPACE
    c_children = SamlBase.c_children.copy()
    c_attributes = SamlBase.c_attributes.copy()
    c_child_order = SamlBase.c_child_order[:]
    c_cardinality = SamlBase.c_cardinality.copy()
    c_children["{%s}Status" % NAMESPACE] = ("status", Status)
    c_attributes["ResponseID"] = ("id", "ID", True)
    c_attributes["InResponseTo"] = ("in_response_to", "NCName", False)
    c_attributes["MajorVersion"] = ("major_version", "integer", True)
    c_attributes["MinorVersion"] = ("minor_version", "integer", True)
    c_attributes["IssueInstant"] = ("issue_instant", "dateTime", True)
    c_attributes["Recipient"] = ("recipient", "anyURI", False)
    c_child_order.extend(["status"])

    def __init__(self, status=None, id=None, in_response_to=None, major_version=MAJOR_VERSION,
                 minor_version=MINOR_VERSION, issue_instant=None, recipient=None, text=None,
                 extension_elements=None, extension_attributes=None):
        SamlBase.__init__(self, text=text, extension_elements=extension_elements,
                          extension_attributes=extension_attributes)
        self.status = status
        self.id = id
        self.in_response_to = in_response_to
        self.major_version = major_version
        self.minor_version = minor_version
        self.issue_instant = issue_instant
        self.recipient = recipient


def response_from_string(xml_string):
    return saml2.create_class_from_xml_string(Response, xml_string)


def status_from_saml2(status):
    """
    Translates a SAML 2.0 Status to its SAML 1.1 form. Second level codes
    without a SAML 1.1 counterpart are left out.

    :type status: saml2.samlp.Status
    :rtype: Status
    """
    top, sub = status_codes(status)
    nested = StatusCode(value=_SECOND_LEVEL_CODES[sub]) if sub in _SECOND_LEVEL_CODES else None
    converted = Status(status_code=StatusCode(value=_TOP_LEVEL_CODES.get(top, STATUS1_RESPONDER),
                                              status_code=nested))
    if status.status_message is not None and status.status_message.text:
        converted.status_message = StatusMessage(text=status.status_message.text)
    return converted


ELEMENT_FROM_STRING = {
    AssertionArtifact.c_tag: assertion_artifact_from_string,
    StatusMessage.c_tag: status_message_from_string,
    StatusCode.c_tag: status_code_from_string,
    Status.c_tag: status_from_string,
    Request.c_tag: request_from_string,
    Response.c_tag: response_from_string,
}

ELEMENT_BY_TAG = {
    "AssertionArtifact": AssertionArtifact,
    "StatusMessage": StatusMessage,
    "StatusCode": StatusCode,
    "Status": Status,
    "Request": Request,
    "Response": Response,
}


def factory(tag, **kwargs):
    return ELEMENT_BY_TAG[tag](**kwargs)
