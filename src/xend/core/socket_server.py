"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

The listening socket and the accept loop.

    bind()      socket() → setsockopt() → bind() → listen()
                Fails fast with OSError (port in use, unknown host).

    serve(cb)   while running:
                    accept()          wakes at least once a second
                    Connection(...)   wrap the client socket
                    cb(conn)          hand off to the HTTP server

    shutdown()  stop the loop and wake accept(); the socket is closed on exit,
                so new clients are refused from then on.

Binding and serving are separate steps so the caller knows the address is
taken (or can report the error) before it starts any threads. Port 0 binds
an ephemeral port; `address` reports the real one.

=============================================================================
"""

import socket
import logging
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

# How often the accept loop checks whether it should stop
ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        server = SocketServer(config)
        server.bind()
        server.serve(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port), with the real port after binding to 0."""
        if self._address is not None:
            return self._address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Allow immediate restart while old connections sit in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Send small responses right away instead of waiting to batch them
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(ACCEPT_POLL_INTERVAL)

        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create the listening socket.

        Returns:
            The bound (host, port).

        Raises:
            OSError: If the address can't be bound.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.debug(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise

        self._socket = sock
        self._address = (self.config.host, sock.getsockname()[1])
        self._running = True

        logger.debug(f"Listening on {self._address[0]}:{self._address[1]}")
        return self._address

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Args:
            connection_handler: Called with each new Connection, in the
                                accept thread. It must not block.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            if not self._running:
                # Raced with shutdown(): refuse instead of serving
                conn.close()
                break

            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Safe to call more than once, from any thread."""
        self._running = False

        # Wake a blocked accept() now rather than at the next poll
        sock = self._socket
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def _cleanup(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
