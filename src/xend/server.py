"""
=============================================================================
XEND SERVER
=============================================================================

Ties the pieces together:

    SocketServer ──accept──► ThreadPool ──► _process_connection(conn)
                                               │
                                               ├─ read + parse request
                                               ├─ handler(writer, request)
                                               │     logging → security →
                                               │     compression → files
                                               └─ finish response, keep-alive?

=============================================================================
LIFECYCLE
=============================================================================

    STARTING ──start()──► SERVING ──signal / shutdown()──► SHUTTING_DOWN ──► STOPPED

    start()      bind (OSError if the address is taken), start the workers
                 and the accept thread
    run()        start(), then block until SIGINT/SIGTERM, then shutdown()
    shutdown()   stop accepting, close idle keep-alive connections, give
                 in-flight requests `shutdown_timeout` seconds, then cut
                 whatever is left

A second SIGINT/SIGTERM during shutdown cuts in-flight connections at once
instead of waiting out the grace period.

=============================================================================
"""

import logging
import signal
import threading
from enum import Enum
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .handlers import FileServer, strip_prefix
from .http import (
    ConnectionResponseWriter,
    HTTPParseError,
    HTTPStatus,
    RequestParser,
    plain_text_response,
    reason_phrase,
)
from .middleware import Handler, compose_middlewares


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging the way the CLI prints it."""
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )

    logging.getLogger("xend").setLevel(numeric)


class ServerState(Enum):
    STARTING = "starting"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class HTTPServer:
    """
    Serves one directory over HTTP.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=9000, directory="./public"))
        server.run()          # blocks until Ctrl+C

    Embedded (tests, other programs):

        server = HTTPServer(ServerConfig(port=0))
        host, port = server.start()
        ...
        server.shutdown()

    =========================================================================

    Args:
        config: Server configuration, validated here.
        handler: Replaces the whole handler chain. By default it is
                 logging → security → compression → the file server.
        access_logger: Logger for access lines (default "xend.access").
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        handler: Optional[Handler] = None,
        access_logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        if handler is None:
            files = FileServer(self.config.directory, buffer_size=self.config.buffer_size)
            handler = compose_middlewares(
                strip_prefix("/", files),
                access_logger=access_logger,
                compression_level=self.config.compression_level,
            )
        self._handler = handler

        self.state = ServerState.STARTING
        self._state_lock = threading.Lock()
        self._accept_thread: Optional[threading.Thread] = None
        self._shutdown_requested = threading.Event()
        self._original_handlers: dict = {}

        # Live connections, for closing idle ones and forced shutdown
        self._connections: set[Connection] = set()
        self._connections_lock = threading.Lock()

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port)."""
        return self._socket_server.address

    @property
    def is_serving(self) -> bool:
        return self.state == ServerState.SERVING

    # ─────────────────────────────────────────────────────────────────────
    # STARTUP
    # ─────────────────────────────────────────────────────────────────────

    def start(self) -> Tuple[str, int]:
        """
        Bind and start serving in background threads.

        Returns:
            The bound (host, port).

        Raises:
            OSError: If the listener can't be bound.
            RuntimeError: If the server was already started.
        """
        with self._state_lock:
            if self.state != ServerState.STARTING:
                raise RuntimeError(f"Cannot start a server that is {self.state.value}")

            host, port = self._socket_server.bind()

            self._thread_pool.start()
            self._accept_thread = threading.Thread(
                target=self._socket_server.serve,
                args=(self._handle_connection,),
                name="xend-accept",
                daemon=True,
            )
            self.state = ServerState.SERVING
            self._accept_thread.start()

        logger.info(
            "Starting server on %s:%d, serving %r", host, port, self.config.directory
        )
        return host, port

    def run(self) -> bool:
        """
        Start, then block until SIGINT/SIGTERM and shut down.

        Returns:
            True if shutdown was graceful.

        Raises:
            OSError: If the listener can't be bound.
        """
        self.start()
        self._setup_signals()

        try:
            # Short waits keep the main thread responsive to signals
            while not self._shutdown_requested.wait(0.5):
                pass
            return self.shutdown()
        finally:
            self._restore_signals()

    def _setup_signals(self):
        # signal.signal() only works in the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.debug(f"Received {signal_name}")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    def request_shutdown(self):
        """
        Ask run() to shut down. Safe from signal handlers and other threads.

        The first call starts a graceful shutdown. Any later call while
        shutting down cuts in-flight connections immediately.
        """
        if self._shutdown_requested.is_set():
            logger.warning("Forcing shutdown, closing %d connections", len(self._connections))
            self._abort_connections()
            return
        self._shutdown_requested.set()

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the server.

        Args:
            timeout: Grace period for in-flight requests, in seconds.
                     Defaults to config.shutdown_timeout.

        Returns:
            True if every in-flight request finished in time, False if
            connections had to be cut.
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout

        with self._state_lock:
            if self.state != ServerState.SERVING:
                if self.state == ServerState.STARTING:
                    self.state = ServerState.STOPPED
                return True
            self.state = ServerState.SHUTTING_DOWN

        self._shutdown_requested.set()
        logger.info("shutting down gracefully, press Ctrl+C again to force")

        # Stop accepting
        self._socket_server.shutdown()
        if self._accept_thread is not None:
            self._accept_thread.join()

        # Nothing is in flight on an idle keep-alive connection
        self._close_idle_connections()

        graceful = self._thread_pool.wait_idle(timeout)
        if not graceful:
            logger.warning(
                "Server forced to shutdown with error: "
                "%d requests still running after %.1fs",
                self._thread_pool.pending, timeout
            )
            self._abort_connections()

        self._thread_pool.shutdown(timeout=2.0 if graceful else 0.0)

        with self._state_lock:
            self.state = ServerState.STOPPED
        logger.info("Server shutdown complete")
        return graceful

    def _close_idle_connections(self):
        with self._connections_lock:
            idle = [conn for conn in self._connections if conn.is_idle]
        for conn in idle:
            conn.abort()

    def _abort_connections(self):
        with self._connections_lock:
            connections = list(self._connections)
        for conn in connections:
            conn.abort()

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS
    # ─────────────────────────────────────────────────────────────────────

    def _handle_connection(self, conn: Connection):
        """Queue a connection for a worker thread (runs in the accept thread)."""
        with self._connections_lock:
            self._connections.add(conn)

        try:
            submitted = self._thread_pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False  # Pool is shutting down

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            conn.close()
            self._forget(conn)

    def _forget(self, conn: Connection):
        with self._connections_lock:
            self._connections.discard(conn)

    def _process_connection(self, conn: Connection):
        """
        The keep-alive loop for one connection (runs in a worker thread).

        1. Read and parse a request
        2. Run it through the handler chain
        3. Finish the response
        4. Repeat while both sides want keep-alive and we're serving
        """
        try:
            with conn:
                while True:
                    if conn.requests_handled > 0 and not self.is_serving:
                        break

                    try:
                        raw_request = conn.read_request()
                    except TimeoutError:
                        self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                        break
                    except ValueError:
                        self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                        break

                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.debug(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, e.status_code)
                        break

                    if not self._serve_request(conn, request):
                        break

                    conn.set_keep_alive()
        finally:
            self._forget(conn)

    def _serve_request(self, conn: Connection, request) -> bool:
        """Run one request through the handler. Returns True to keep the connection."""
        keep_alive = (
            self.config.keep_alive
            and request.is_keep_alive
            and self.is_serving
        )

        writer = ConnectionResponseWriter(
            conn,
            request,
            keep_alive=keep_alive,
            server_name=self.config.server_name,
            buffer_size=self.config.write_buffer_size,
        )

        try:
            self._handler(writer, request)
            keep_open = writer.finish()
        except ConnectionError as e:
            logger.debug(f"[{conn.id}] Client went away: {e}")
            return False
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            if not writer.head_sent:
                self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, request.version)
            return False

        return keep_open and self.is_serving

    def _send_error(self, conn: Connection, status: int, version: str = "HTTP/1.1"):
        """
        Send a plain-text error and mark the connection for closing.

        Used for errors that happen outside the handler chain (parse
        errors, timeouts, overload, handler crashes).
        """
        response = plain_text_response(status, f"{int(status)} {reason_phrase(status)}")
        response.version = version
        conn.send_response(response.to_bytes(self.config.server_name))
