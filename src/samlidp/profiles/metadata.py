"""
Serves the metadata of the IdP itself, built from its endpoints with pysaml2.
"""
import copy
import logging

from saml2 import BINDING_HTTP_POST
from saml2 import BINDING_HTTP_REDIRECT
from saml2 import BINDING_SOAP
from saml2.config import Config
from saml2.metadata import entity_descriptor
from saml2.metadata import sign_entity_descriptor
from saml2.saml import NAMEID_FORMAT_PERSISTENT
from saml2.saml import NAMEID_FORMAT_TRANSIENT
from saml2.sigver import security_context
from saml2.time_util import in_a_while
from saml2.validate import valid_instance

from ..context import ProfileKind
from ..exception import SAMLIdPConfigurationError
from ..response import Response

import samlidp.logging_util as lu


logger = logging.getLogger(__name__)

METADATA_CONTENT_TYPE = "application/samlmetadata+xml"

DEFAULT_IDP_ENDPOINTS = {
    "single_sign_on_service": [
        ("SAML2/Redirect/SSO", BINDING_HTTP_REDIRECT),
        ("SAML2/POST/SSO", BINDING_HTTP_POST),
        ("SAML2/SOAP/ECP", BINDING_SOAP),
    ],
    "artifact_resolution_service": [("SAML2/SOAP/ArtifactResolution", BINDING_SOAP)],
}
DEFAULT_AA_ENDPOINTS = {
    "attribute_service": [("SAML2/SOAP/AttributeQuery", BINDING_SOAP)],
}
DEFAULT_NAME_ID_FORMATS = [NAMEID_FORMAT_TRANSIENT, NAMEID_FORMAT_PERSISTENT]


def _security_context(key_file, cert_file):
    conf = Config()
    conf.key_file = key_file
    conf.cert_file = cert_file
    return security_context(conf)


class SAMLMetadataProfileHandler(object):
    """
    Answers with an EntityDescriptor holding an IDPSSODescriptor and an
    AttributeAuthorityDescriptor for the endpoints of the IdP.

    Configuration, all optional:

    ``endpoint``
        path the metadata is served on
    ``idp_endpoints``, ``aa_endpoints``
        service name -> list of (path relative to BASE, binding)
    ``name_id_format``
        NameID formats to advertise
    ``cert_file``
        certificate published as the IdP's key
    ``valid_for``
        hours the metadata stays valid
    ``sign``
        sign the document with ``key_file`` and ``cert_file``
    ``organization``, ``contact_person``
        as in a pysaml2 configuration
    """
    kind = ProfileKind.SAML_METADATA

    def __init__(self, services, config=None, name="metadata"):
        """
        :type services: samlidp.profiles.base.ProfileServices
        :type config: dict[str, Any]
        :type name: str
        """
        self.services = services
        self.config = config or {}
        self.name = name
        if self.config.get("sign") and not (self.config.get("key_file") and self.config.get("cert_file")):
            raise SAMLIdPConfigurationError("Signed metadata needs 'key_file' and 'cert_file'")

    def register_endpoints(self):
        """
        :rtype: list[(str, (samlidp.context.RequestContext) -> samlidp.response.Response)]
        """
        return [("^{}$".format(self.config.get("endpoint", "SAML2/Metadata")), self.metadata_endpoint)]

    def _endpoints(self, key, default):
        return {
            service: [("{}/{}".format(self.services.base_url, path), binding) for path, binding in locations]
            for service, locations in self.config.get(key, default).items()
        }

    def entity_config(self):
        """
        The IdP described as a pysaml2 configuration dict.

        :rtype: dict[str, Any]
        """
        config = {
            "entityid": self.services.entity_id,
            "service": {
                "idp": {
                    "endpoints": self._endpoints("idp_endpoints", DEFAULT_IDP_ENDPOINTS),
                    "name_id_format": self.config.get("name_id_format", DEFAULT_NAME_ID_FORMATS),
                },
                "aa": {
                    "endpoints": self._endpoints("aa_endpoints", DEFAULT_AA_ENDPOINTS),
                },
            },
        }
        for key in ("cert_file", "organization", "contact_person"):
            if key in self.config:
                config[key] = self.config[key]
        return config

    def entity_descriptor(self):
        """
        :rtype: saml2.md.EntityDescriptor
        """
        descriptor = entity_descriptor(Config().load(copy.deepcopy(self.entity_config())))
        if self.config.get("valid_for"):
            descriptor.valid_until = in_a_while(hours=int(self.config["valid_for"]))
        return descriptor

    def metadata(self):
        """
        The metadata document, signed when configured to.

        :rtype: str
        """
        descriptor = self.entity_descriptor()
        if not self.config.get("sign"):
            return str(descriptor)

        secc = _security_context(self.config["key_file"], self.config["cert_file"])
        signed, xmldoc = sign_entity_descriptor(descriptor, None, secc)
        if not valid_instance(signed):
            raise SAMLIdPConfigurationError("Could not construct a valid EntityDescriptor")
        return xmldoc

    def metadata_endpoint(self, context):
        """
        :type context: samlidp.context.RequestContext
        :rtype: samlidp.response.Response
        """
        msg = "Serving metadata of {}".format(self.services.entity_id)
        logline = lu.LOG_FMT.format(id=lu.get_session_id(context.state), message=msg)
        logger.debug(logline)
        return Response(self.metadata(), content=METADATA_CONTENT_TYPE)
