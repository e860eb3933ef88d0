"""
Exceptions for samlidp
"""
from saml2.samlp import STATUS_AUTHN_FAILED
from saml2.samlp import STATUS_NO_PASSIVE
from saml2.samlp import STATUS_REQUEST_DENIED
from saml2.samlp import STATUS_REQUESTER
from saml2.samlp import STATUS_RESPONDER


class SAMLIdPError(Exception):
    """
    Base samlidp exception
    """
    pass


class SAMLIdPConfigurationError(SAMLIdPError):
    """
    samlidp configuration error
    """
    pass


class SAMLIdPStateError(SAMLIdPError):
    """
    samlidp state error.
    """
    pass


class SAMLIdPBadContextError(SAMLIdPError):
    """
    Raise this exception if validating the Context and failing.
    """
    pass


class SAMLIdPNoBoundEndpointError(SAMLIdPError):
    """
    Raised when a given url path is not bound to any endpoint function
    """
    pass


class SAMLIdPUnknownError(SAMLIdPError):
    """
    samlidp unknown error
    """
    pass


class UnknownBindingError(SAMLIdPError):
    """
    Raised when no encoder or decoder is registered for a binding URI.
    """

    def __init__(self, binding):
        super().__init__("no encoder/decoder registered for binding {}".format(binding))
        self.binding = binding


class ProfileError(SAMLIdPError):
    """
    A failure inside a profile handler that must be answered with a SAML
    Status-bearing response.

    The top level status code and the optional second level status code
    travel with the exception so the flow driver can build the error
    response without knowing which stage failed.
    """
    status_code = STATUS_RESPONDER
    sub_status_code = None

    def __init__(self, message, status_code=None, sub_status_code=None):
        """
        :type message: str
        :type status_code: str
        :type sub_status_code: str

        :param message: Human readable status message
        :param status_code: Top level SAML status code URI
        :param sub_status_code: Second level SAML status code URI
        """
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if sub_status_code is not None:
            self.sub_status_code = sub_status_code


class MessageDecodingError(ProfileError):
    """
    The inbound message could not be decoded.
    """
    status_code = STATUS_RESPONDER


class SecurityPolicyError(ProfileError):
    """
    The inbound message violated a security policy (signature, issuer, replay).
    """
    status_code = STATUS_REQUESTER
    sub_status_code = STATUS_REQUEST_DENIED


class AuthenticationRequestError(ProfileError):
    """
    The authentication request can not be honoured.
    """
    pass


class AttributeRequestError(ProfileError):
    """
    Attributes or the principal could not be resolved for a request.
    """
    pass


class ArtifactResolutionError(ProfileError):
    """
    An artifact could not be dereferenced.
    """
    sub_status_code = STATUS_REQUEST_DENIED


class AuthenticationError(SAMLIdPError):
    """
    The authentication engine could not authenticate the user.
    """
    status_code = STATUS_RESPONDER
    sub_status_code = STATUS_AUTHN_FAILED


class PassiveAuthenticationError(AuthenticationError):
    """
    The user could not be authenticated without interaction and the request
    asked for passive authentication.
    """
    sub_status_code = STATUS_NO_PASSIVE
