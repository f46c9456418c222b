"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything about HTTP/1.x that doesn't touch a socket:

    request.py      bytes → HTTPRequest
    writer.py       ResponseWriter, streaming a response onto a connection
    response.py     status line + header serialization, buffered replies
    status_codes.py status codes and reason phrases
    mime_types.py   Content-Type by extension or by sniffing

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    format_http_date,
    plain_text_response,
    serialize_head,
)
from .writer import (
    BodyNotAllowedError,
    ConnectionResponseWriter,
    ContentLengthError,
    ResponseWriter,
    http_error,
)
from .status_codes import HTTPStatus, body_allowed, reason_phrase
from .mime_types import get_mime_type, get_content_type, sniff_content_type

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response writing
    "ResponseWriter",
    "ConnectionResponseWriter",
    "BodyNotAllowedError",
    "ContentLengthError",
    "http_error",

    # Buffered responses
    "HTTPResponse",
    "format_http_date",
    "plain_text_response",
    "serialize_head",

    # Status codes
    "HTTPStatus",
    "body_allowed",
    "reason_phrase",

    # MIME types
    "get_mime_type",
    "get_content_type",
    "sniff_content_type",
]
