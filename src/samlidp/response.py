"""
HTTP responses returned by the IdP.
"""


class Response(object):
    """
    An HTTP response that is also a WSGI application.
    """
    _status = "200 OK"
    _content_type = "text/html"

    def __init__(self, message=None, status=None, headers=None, content=None):
        """
        :type message: str | bytes | list
        :type status: str
        :type headers: list[(str, str)]
        :type content: str

        :param message: response body
        :param status: HTTP status line, defaults to the class status
        :param headers: header list
        :param content: content type, used unless a Content-Type header is given
        """
        self.status = status or self._status
        self.headers = list(headers) if headers else []
        self.message = message
        if not any(name.lower() == "content-type" for name, _ in self.headers):
            self.headers.append(("Content-Type", content or self._content_type))

    @property
    def status_code(self):
        return int(self.status.split(" ", 1)[0])

    def header(self, name):
        """
        :type name: str
        :rtype: str | None
        """
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None

    def __call__(self, environ, start_response):
        start_response(self.status, self.headers)
        if isinstance(self.message, list):
            return self.message
        return [self.message]


class Redirect(Response):
    _status = "302 Found"

    def __init__(self, redirect_url, headers=None, content=None):
        """
        :type redirect_url: str
        """
        super().__init__(redirect_url, headers=headers, content=content)
        self.headers.append(("Location", redirect_url))


class SeeOther(Redirect):
    _status = "303 See Other"


class BadRequest(Response):
    _status = "400 Bad Request"


class NotFound(Response):
    _status = "404 Not Found"


class ServiceError(Response):
    _status = "500 Internal Server Error"
