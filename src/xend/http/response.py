"""
=============================================================================
HTTP RESPONSE SERIALIZATION
=============================================================================

Builds the bytes that go on the wire ahead of (or instead of) a streamed
body:

    HTTP/1.1 200 OK\\r\\n                     ← status line
    Content-Type: text/html; charset=utf-8\\r\\n
    Content-Length: 1234\\r\\n
    Date: Sun, 18 Oct 2026 10:00:00 GMT\\r\\n  ← auto-added
    Server: xend/1.0.0\\r\\n                   ← auto-added
    \\r\\n                                     ← end of head

Handlers never build HTTPResponse objects themselves: they stream through
a ResponseWriter (see writer.py). HTTPResponse is only used by the server
for the few replies it sends before a handler runs (parse errors, request
timeouts, overload).

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from .status_codes import HTTPStatus, reason_phrase


DEFAULT_SERVER_NAME = "xend"


def format_http_date(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime as an HTTP-date (RFC 9110 §5.6.7).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Sun, 18 Oct 2026 10:00:00 GMT

    HTTP dates are always GMT. Naive datetimes are taken as UTC.
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def serialize_head(
    version: str,
    status: int,
    headers: Dict[str, str],
    server_name: str = DEFAULT_SERVER_NAME,
) -> bytes:
    """
    Serialize a status line and headers, terminated by the blank line.

    Date and Server are added when the caller didn't set them. The
    caller's dict is not modified.
    """
    response_headers = dict(headers)
    response_headers.setdefault("Date", format_http_date())
    response_headers.setdefault("Server", server_name)

    lines = [f"{version} {int(status)} {reason_phrase(status)}"]
    for name, value in response_headers.items():
        lines.append(f"{name}: {value}")
    lines.append("")

    return "\r\n".join(lines).encode("latin-1") + b"\r\n"


@dataclass
class HTTPResponse:
    """
    A fully buffered response.

        HTTPResponse(status=HTTPStatus.BAD_REQUEST, body=b"bad request\\n")
            .to_bytes()
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Serialize head and body. Content-Length is computed if missing."""
        headers = dict(self.headers)
        headers.setdefault("Content-Length", str(len(self.body)))
        return serialize_head(self.version, self.status, headers, server_name) + self.body


def plain_text_response(
    status: int,
    message: str,
    close: bool = True,
) -> HTTPResponse:
    """
    A short plain-text error reply, "<code> <message>\\n".

    Used for errors detected before any handler runs.
    """
    response = HTTPResponse(
        status=status,
        headers={
            "Content-Type": "text/plain; charset=utf-8",
            "X-Content-Type-Options": "nosniff",
        },
        body=f"{message}\n".encode("utf-8"),
    )
    if close:
        response.set_header("Connection", "close")
    return response
