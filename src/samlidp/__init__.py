# -*- coding: utf-8 -*-
"""
    samlidp
    ~~~~~~~~~~~~~~~~

    Protocol engine of a SAML identity provider.
    Handles SAML2 Web Browser SSO, the legacy Shibboleth authentication
    request, ECP, attribute queries and artifact resolution.
"""
from importlib.metadata import version as _resolve_package_version


def _parse_version():
    value = _resolve_package_version("samlidp")
    return value


version = _parse_version()
__version__ = version
