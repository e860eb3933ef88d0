import logging
import logging.config
from io import BytesIO
from urllib.parse import parse_qsl

from cookies_samesite_compat import CookiesSameSiteCompatMiddleware

import samlidp

from .base import IdPBase
from .context import RequestContext
from .response import NotFound
from .response import ServiceError


logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
# bodies of these types are SOAP envelopes, handed to the decoders whole
XML_CONTENT_TYPES = ("text/xml", "application/soap+xml", "application/vnd.paos+xml")

DEFAULT_LOGGING_CONFIG = {
    "version": 1,
    "formatters": {
        "simple": {
            "format": "[%(asctime)s] [%(levelname)s] [%(name)s.%(funcName)s] %(message)s"
        }
    },
    "handlers": {
        "stdout": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "level": "DEBUG",
            "formatter": "simple",
        }
    },
    "loggers": {"samlidp": {"level": "DEBUG"}},
    "root": {"level": "DEBUG", "handlers": ["stdout"]},
}


def query_parameters(query_string):
    """
    :type query_string: str | None
    :rtype: dict[str, str]
    """
    return dict(parse_qsl(query_string or ""))


def body_parameters(content_type, body):
    """
    Interprets a POST body. Form posts give their fields, SOAP and PAOS
    messages are kept under the key ``body``.

    :type content_type: str
    :type body: str
    :rtype: dict[str, str] | None
    """
    if FORM_CONTENT_TYPE in content_type:
        return query_parameters(body)
    if any(xml_type in content_type for xml_type in XML_CONTENT_TYPES):
        return {"body": body}
    return None


def transport_headers(environ):
    """
    The HTTP headers of the request together with the variables the web
    server sets after authenticating the user (``REMOTE_USER``, ...).
    """
    return {key: value for key, value in environ.items() if key.startswith(("HTTP_", "REMOTE_"))}


class ToBytesMiddleware(object):
    """Encodes text response bodies for the WSGI server."""

    def __init__(self, app):
        self.app = app

    def __call__(self, environ, start_response):
        body = self.app(environ, start_response)
        if isinstance(body, str):
            return [body.encode("utf-8")]
        if isinstance(body, list):
            return [part if isinstance(part, bytes) else part.encode("utf-8") for part in body]
        return body


class WsgiApplication(IdPBase):
    def _context_from_environ(self, environ, path):
        length = int(environ.get("CONTENT_LENGTH") or 0)
        raw_body = environ["wsgi.input"].read(length)
        # let the middleware further out read the body again
        environ["wsgi.input"] = BytesIO(raw_body)

        context = RequestContext()
        context.path = path
        context.request_method = environ.get("REQUEST_METHOD")
        context.request_uri = environ.get("REQUEST_URI")
        context.qs_params = query_parameters(environ.get("QUERY_STRING"))
        if context.request_method == "POST":
            context.request = body_parameters(environ.get("CONTENT_TYPE", ""), raw_body.decode("utf-8"))
        else:
            context.request = dict(context.qs_params)
        context.http_headers = transport_headers(environ)
        context.cookie = context.http_headers.get("HTTP_COOKIE", "")
        context.peer_address = environ.get("REMOTE_ADDR")
        context.secure = environ.get("wsgi.url_scheme") == "https"

        logger.debug({
            "message": "IdP received request",
            "request_method": context.request_method,
            "request_uri": context.request_uri,
            "content_length": length,
            "request_data": context.request,
            "query_params": context.qs_params,
        })
        return context

    def __call__(self, environ, start_response, debug=False):
        path = environ.get("PATH_INFO", "").lstrip("/")
        if not path or ".." in path:
            return NotFound("Couldn't find the page you asked for!")(environ, start_response)

        context = self._context_from_environ(environ, path)
        try:
            resp = self.run(context)
        except Exception as e:
            logger.exception(str(e))
            if debug:
                raise
            resp = ServiceError("%s" % e)
        return resp(environ, start_response)


def make_app(idp_config):
    """
    Builds the WSGI application for a configuration.

    :type idp_config: samlidp.idp_config.IdPConfig
    """
    try:
        logging.config.dictConfig(idp_config.get("LOGGING", DEFAULT_LOGGING_CONFIG))
        logger.info("Running samlidp version {v}".format(v=samlidp.__version__))

        app = WsgiApplication(idp_config)
        app = CookiesSameSiteCompatMiddleware(app, idp_config)
        return ToBytesMiddleware(app)
    except Exception:
        logger.exception("Failed to create WSGI app.")
        raise
