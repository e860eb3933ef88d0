"""
Translation of failures into SAML protocol Status elements.
"""
import logging

from saml2.samlp import STATUS_AUTHN_FAILED
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER
from saml2.samlp import STATUS_SUCCESS
from saml2.samlp import Status
from saml2.samlp import StatusCode
from saml2.samlp import StatusMessage

from .exception import AuthenticationError
from .exception import ProfileError
from .exception import UnknownBindingError


logger = logging.getLogger(__name__)


def build_status(status_code, sub_status_code=None, message=None):
    """
    Creates a Status element.

    :type status_code: str
    :type sub_status_code: str | None
    :type message: str | None
    :rtype: saml2.samlp.Status

    :param status_code: top level status code URI
    :param sub_status_code: optional second level status code URI
    :param message: optional status message
    :return: Status element
    """
    nested = StatusCode(value=sub_status_code) if sub_status_code else None
    status = Status(status_code=StatusCode(value=status_code, status_code=nested))
    if message:
        status.status_message = StatusMessage(text=message)
    return status


def success_status():
    return build_status(STATUS_SUCCESS)


def status_from_error(error):
    """
    Maps an exception raised by a pipeline stage to a Status element.

    Profile errors carry their own codes. Authentication engine failures map
    to Responder with AuthnFailed or NoPassive. Anything else is reported as a
    generic Responder fault without leaking the exception text.

    :type error: Exception
    :rtype: saml2.samlp.Status
    """
    if isinstance(error, ProfileError):
        return build_status(error.status_code, error.sub_status_code, error.message)
    if isinstance(error, AuthenticationError):
        return build_status(error.status_code, error.sub_status_code, str(error) or None)
    if isinstance(error, UnknownBindingError):
        return build_status(STATUS_RESPONDER, message=str(error))

    logger.debug("no status mapping for {}, using generic responder fault".format(type(error).__name__))
    return build_status(STATUS_RESPONDER, message="Error processing request")


def status_codes(status):
    """
    Returns the (top level, second level) status code values of a Status.

    :type status: saml2.samlp.Status
    :rtype: (str, str | None)
    """
    top = status.status_code
    sub = top.status_code if top is not None else None
    return (
        top.value if top is not None else None,
        sub.value if sub is not None else None,
    )


def is_success(status):
    return status_codes(status)[0] == STATUS_SUCCESS


def is_requester_fault(status):
    return status_codes(status)[0] == STATUS_REQUESTER


def authentication_failed_status(message=None):
    return build_status(STATUS_RESPONDER, STATUS_AUTHN_FAILED, message)
