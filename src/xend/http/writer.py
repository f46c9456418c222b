"""
=============================================================================
RESPONSE WRITERS
=============================================================================

Handlers don't return responses, they stream them through a
ResponseWriter:

    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.write_header(HTTPStatus.OK)      # optional, 200 by default
    writer.write(b"hello ")
    writer.write(b"world")

Cross-cutting behaviour is added by WRAPPING the writer, not by
subclassing it. Each wrapper holds the next writer and forwards calls,
doing its own bookkeeping on the way:

    ┌──────────────────────────────────────────────────────────────────┐
    │  InstrumentedResponseWriter    records status + bytes written    │
    │   └── CompressionResponseWriter  gzips body bytes                │
    │        └── ConnectionResponseWriter  frames bytes onto socket    │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
HOW THE CONNECTION WRITER FRAMES A BODY
=============================================================================

write_header() only records the status and snapshots the headers; nothing
is sent yet. Body bytes are buffered up to `buffer_size`:

    - handler finishes before the buffer fills
          → Content-Length: <buffered size>, one send
    - buffer overflows (large file)
          → Transfer-Encoding: chunked on HTTP/1.1,
            close-delimited body on HTTP/1.0
    - handler declared Content-Length itself
          → body streamed as-is, never more than declared

HEAD sends no body. The head carries the declared Content-Length, or the
size of what the handler wrote; if it wrote nothing, no length at all.

=============================================================================
"""

from abc import ABC, abstractmethod
import logging
from typing import Dict, Optional

from .mime_types import sniff_content_type
from .request import HTTPRequest
from .response import DEFAULT_SERVER_NAME, serialize_head
from .status_codes import HTTPStatus, body_allowed


logger = logging.getLogger(__name__)


class BodyNotAllowedError(ValueError):
    """Body bytes written for a status that can't carry a body (204, 304)."""


class ContentLengthError(ValueError):
    """More body bytes written than the declared Content-Length."""


class ResponseWriter(ABC):
    """
    The capability every response writer provides.

    Attributes:
        headers: Response headers, canonical capitalisation
                 ("Content-Type"). Changes after write_header() have no
                 effect on the response.
    """

    headers: Dict[str, str]

    @abstractmethod
    def write_header(self, status: int) -> None:
        """Set the response status. Only the first call counts."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write body bytes, implying write_header(200) if needed.

        Returns:
            Number of bytes accepted.
        """


class ConnectionResponseWriter(ResponseWriter):
    """
    The plain writer: puts one response onto a client connection.

    Args:
        conn: Anything with send_response(bytes) -> bool (see
              core.connection.Connection).
        request: The request being answered. Its method and version
                 decide body and framing rules.
        keep_alive: Whether the connection may stay open afterwards.
        server_name: Value of the Server header.
        buffer_size: Body bytes held back to compute Content-Length.
    """

    def __init__(
        self,
        conn,
        request: HTTPRequest,
        keep_alive: bool = True,
        server_name: str = DEFAULT_SERVER_NAME,
        buffer_size: int = 4096,
    ):
        self.headers: Dict[str, str] = {}
        self.status: Optional[int] = None

        self._conn = conn
        self._request = request
        self._server_name = server_name
        self._buffer_size = buffer_size
        self._buffer = bytearray()

        self._snapshot: Dict[str, str] = {}
        self._head_sent = False
        self._chunked = False
        self._declared_length: Optional[int] = None
        self._body_written = 0

        self.close_after = not keep_alive

    @property
    def head_sent(self) -> bool:
        """True once the status line went out and the response can't change."""
        return self._head_sent

    @property
    def _is_head_request(self) -> bool:
        return self._request.method == "HEAD"

    def write_header(self, status: int) -> None:
        if self.status is not None:
            logger.warning(
                "superfluous write_header call (status %d, already %d)",
                status, self.status
            )
            return

        self.status = int(status)
        self._snapshot = dict(self.headers)

        declared = self._snapshot.get("Content-Length")
        if declared is not None:
            try:
                self._declared_length = int(declared)
            except ValueError:
                logger.warning("dropping invalid Content-Length %r", declared)
                del self._snapshot["Content-Length"]

    def write(self, data: bytes) -> int:
        if self.status is None:
            if "Content-Type" not in self.headers and data:
                self.headers["Content-Type"] = sniff_content_type(bytes(data))
            self.write_header(HTTPStatus.OK)

        if not data:
            return 0

        if not body_allowed(self.status):
            raise BodyNotAllowedError(
                f"response with status {self.status} cannot have a body"
            )

        if self._declared_length is not None:
            if self._body_written + len(data) > self._declared_length:
                raise ContentLengthError("wrote more than the declared Content-Length")
        self._body_written += len(data)

        # HEAD responses count body bytes (for Content-Length) but send none
        if self._is_head_request:
            if not self._head_sent and self._declared_length is None:
                self._buffer += data
            return len(data)

        if self._head_sent:
            self._send_body(bytes(data))
            return len(data)

        self._buffer += data
        if len(self._buffer) >= self._buffer_size:
            self._send_head(content_length=None)
            self._flush_buffer()
        return len(data)

    def finish(self) -> bool:
        """
        Complete the response.

        Sends whatever is still buffered (or an empty 200 if the handler
        wrote nothing) and the chunked terminator if one is due.

        Returns:
            True if the connection can serve another request.
        """
        if self.status is None:
            self.write_header(HTTPStatus.OK)

        if not self._head_sent:
            self._send_head(content_length=len(self._buffer))
            if not self._is_head_request:
                self._flush_buffer()
        elif self._chunked:
            self._send(b"0\r\n\r\n")

        if (
            self._declared_length is not None
            and not self._is_head_request
            and body_allowed(self.status)
            and self._body_written < self._declared_length
        ):
            # The client is still waiting for bytes that will never come
            logger.warning(
                "handler wrote %d of %d declared bytes",
                self._body_written, self._declared_length
            )
            self.close_after = True

        return not self.close_after

    # ─────────────────────────────────────────────────────────────────────
    # WIRE OUTPUT
    # ─────────────────────────────────────────────────────────────────────

    def _send_head(self, content_length: Optional[int]) -> None:
        headers = self._snapshot

        if body_allowed(self.status) and "Content-Type" not in headers and self._buffer:
            headers["Content-Type"] = sniff_content_type(bytes(self._buffer))

        if self.status == HTTPStatus.NOT_MODIFIED or not body_allowed(self.status):
            headers.pop("Transfer-Encoding", None)
            if self.status != HTTPStatus.NOT_MODIFIED:
                headers.pop("Content-Length", None)
        elif "Content-Length" in headers:
            pass
        elif content_length is not None and (content_length or not self._is_head_request):
            headers["Content-Length"] = str(content_length)
        elif self._is_head_request:
            # A HEAD handler that wrote nothing: the real length is unknown
            pass
        elif self._request.version == "HTTP/1.1":
            headers["Transfer-Encoding"] = "chunked"
            self._chunked = True
        else:
            # HTTP/1.0 without a length: the close marks the end of the body
            self.close_after = True

        if self.close_after:
            headers["Connection"] = "close"
        elif self._request.version == "HTTP/1.0":
            headers["Connection"] = "keep-alive"

        self._head_sent = True
        self._send(serialize_head(
            self._request.version, self.status, headers, self._server_name
        ))

    def _flush_buffer(self) -> None:
        if self._buffer:
            payload = bytes(self._buffer)
            self._buffer.clear()
            self._send_body(payload)

    def _send_body(self, data: bytes) -> None:
        if self._chunked:
            data = f"{len(data):x}\r\n".encode("ascii") + data + b"\r\n"
        self._send(data)

    def _send(self, data: bytes) -> None:
        if not self._conn.send_response(data):
            self.close_after = True
            raise ConnectionError("client connection lost")


def http_error(writer: ResponseWriter, message: str, status: int) -> None:
    """
    Reply with a plain-text error, "<message>\\n".

    Any Content-Length a handler set earlier is dropped since it described
    a different body.
    """
    writer.headers.pop("Content-Length", None)
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    writer.write_header(status)
    writer.write(f"{message}\n".encode("utf-8"))
