"""
=============================================================================
HTTP STATUS CODES (RFC 9110)
=============================================================================

The status codes a static file server actually emits, with their reason
phrases for the status line.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK, 206 Partial Content (range requests)             │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3xx   │ 301 Moved Permanently (directory slash redirects)        │
    │        │ 304 Not Modified (conditional GETs)                      │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400/403/404/405/408/413/416                              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500/503/505                                              │
    └────────┴───────────────────────────────────────────────────────────┘

Some statuses never carry a body. The connection writer asks
`body_allowed()` before sending any body bytes.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes compare equal to integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101

    OK = 200
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206

    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    RANGE_NOT_SATISFIABLE = 416
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.CONTINUE: "Continue",
    HTTPStatus.SWITCHING_PROTOCOLS: "Switching Protocols",

    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.NOT_MODIFIED: "Not Modified",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.PERMANENT_REDIRECT: "Permanent Redirect",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",
    HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(status: int) -> str:
    """
    Get the reason phrase for any integer status.

    Handlers may pass plain ints, including codes this enum doesn't list.
    """
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def body_allowed(status: int) -> bool:
    """
    Check whether a response with this status may carry a body.

    1xx, 204 No Content and 304 Not Modified never do (RFC 9110 §6.4.1).
    """
    if 100 <= status < 200:
        return False
    return status not in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED)
