"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted client socket:

    read_request()    buffer recv() chunks until one complete request
                      (headers + Content-Length body) is available
    send_response()   sendall(), reporting failure instead of raising
    close()           orderly TCP close (FIN, drain, release the fd)
    abort()           wake and cut a connection from another thread

A keep-alive connection spends most of its life blocked in recv() waiting
for the next request. That state is IDLE: nothing is in flight, so a
graceful shutdown can close it right away.

    ┌──────────┐  bytes   ┌──────────┐ parsed  ┌────────────┐ sent ┌────────────┐
    │   NEW    │ ───────► │ READING  │ ──────► │ PROCESSING │ ───► │ KEEP_ALIVE │
    └──────────┘          └──────────┘         └────────────┘      └─────┬──────┘
                               ▲                                        │
                               └────────────── next request ────────────┘

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Just accepted, haven't read anything yet
    READING = "reading"        # Reading request data
    PROCESSING = "processing"  # Request parsed, handler is executing
    WRITING = "writing"        # Sending response data
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for next request
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Compared and hashed by identity; the server tracks live connections
    in a set.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for debug logging.
        state: Current connection state.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192           # How much to read at once
    timeout: float = 30.0             # Timeout for the first request
    keep_alive_timeout: float = 5.0   # Timeout between requests
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _waiting: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)

        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def is_idle(self) -> bool:
        """
        True while blocked waiting for a request that hasn't started.

        Closing an idle connection loses nothing.
        """
        return self._waiting and not self._buffer

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Bytes past the end of the request (a pipelined next request) stay
        buffered for the next call.

        Returns:
            Complete HTTP request bytes, or None if the client closed the
            connection or a keep-alive wait timed out.

        Raises:
            TimeoutError: If the first request doesn't arrive in time.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        # Keep-alive connections get a shorter timeout
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        self._waiting = True
        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None  # Connection closed by client

                self._waiting = False
                self._buffer += chunk

                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            self._waiting = False

            header_end = self._buffer.find(b"\r\n\r\n")
            header_section = self._buffer[:header_end]
            body_start = header_end + 4

            content_length = self._parse_content_length(header_section)
            if body_start + content_length > self.max_request_size:
                raise ValueError(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Connection closed mid-request

                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]

            # Keep any extra data (pipelined requests)
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            self.last_activity = time.time()

            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self._waiting = False
            if self.state != ConnectionState.CLOSED:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass  # Aborted from another thread

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except socket.timeout:
            raise
        except OSError:
            # The socket was shut down or closed under us (abort)
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        # A plain scan: this runs before the request is parsed
        try:
            header_str = headers.decode("latin-1").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return max(0, int(line.split(":", 1)[1].strip()))
        except (ValueError, IndexError):
            pass
        return 0

    def send_response(self, data: bytes) -> bool:
        """
        Send bytes to the client.

        Returns:
            True if send succeeded, False if the connection is lost.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        """Mark connection as waiting for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def abort(self):
        """
        Cut the connection now, from any thread.

        shutdown(SHUT_RDWR) wakes a thread blocked in recv() and makes its
        sends fail. The owning thread still calls close().
        """
        if self.state == ConnectionState.CLOSED:
            return
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, we're done sending
        2. drain what the client still sends, briefly
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
