"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

One dataclass holds every setting. It is built once at startup (from CLI
flags, environment variables or code), validated, and never changed while
the server runs.

    config = ServerConfig(host="0.0.0.0", port=9000, directory="./public")
    config.validate()      # ValueError on anything invalid

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from . import __version__


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the xend server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SERVING
    - host, port, directory

    NETWORK
    - backlog, buffer_size, write_buffer_size, timeout

    HTTP
    - keep_alive, keep_alive_timeout, max_request_size, server_name

    THREADING AND SHUTDOWN
    - min_workers, max_workers, queue_size, shutdown_timeout

    RESPONSES AND LOGGING
    - compression_level, log_level

    =========================================================================
    """

    host: str = "localhost"
    """
    The address to bind to.
    - "localhost" - This machine only
    - "0.0.0.0" - All network interfaces
    """

    port: int = 8000
    """The port to listen on. 0 picks a free ephemeral port."""

    directory: str = "."
    """The directory tree to serve. Must exist."""

    backlog: int = 128
    """Maximum number of connections waiting to be accepted."""

    buffer_size: int = 8192
    """Bytes per recv() call, and chunk size when streaming files."""

    write_buffer_size: int = 4096
    """
    Response bytes held back before the head is sent.
    Responses that fit get a Content-Length; larger ones are chunked.
    """

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for the first request on a connection."""

    keep_alive: bool = True
    """Allow several requests on one TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 1024 * 1024
    """Largest accepted request (headers + body) in bytes."""

    min_workers: int = 4
    """Worker threads started with the server."""

    max_workers: int = 32
    """Upper bound on worker threads under load."""

    queue_size: int = 128
    """Connections that may wait for a worker before new ones get 503."""

    shutdown_timeout: float = 5.0
    """Grace period in seconds for in-flight requests on shutdown."""

    compression_level: int = 6
    """gzip level, 1 (fastest) to 9 (smallest)."""

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    server_name: str = field(default=f"xend/{__version__}")
    """Value of the Server response header."""

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        XEND_HOST       Bind address (default: localhost)
        XEND_PORT       Port (default: 8000)
        XEND_DIR        Directory to serve (default: .)
        XEND_LOG_LEVEL  Logging level (default: INFO)

        =====================================================================

        Keyword arguments override the environment.

        Raises:
            ValueError: If XEND_PORT is not an integer.
        """
        port_text = os.getenv("XEND_PORT", str(cls.port))
        try:
            port = int(port_text)
        except ValueError:
            raise ValueError(f"Invalid XEND_PORT: {port_text!r}")

        values = dict(
            host=os.getenv("XEND_HOST", cls.host),
            port=port,
            directory=os.getenv("XEND_DIR", cls.directory),
            log_level=os.getenv("XEND_LOG_LEVEL", cls.log_level).upper(),
        )
        values.update(overrides)
        return cls(**values)

    @property
    def log_level_value(self) -> int:
        """The log level as a logging module constant."""
        return getattr(logging, self.log_level.upper())

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so that mistakes show up immediately.

        Raises:
            ValueError: Describing the first invalid setting.
        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if not self.host:
            raise ValueError("host must not be empty")

        if not os.path.isdir(self.directory):
            raise ValueError(f"Directory does not exist: {self.directory}")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.write_buffer_size < 0:
            raise ValueError("write_buffer_size must be >= 0")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be >= 0")

        if not 1 <= self.compression_level <= 9:
            raise ValueError(
                f"Invalid compression_level: {self.compression_level}. Must be 1-9."
            )

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level: {self.log_level}. "
                f"Must be one of {', '.join(LOG_LEVELS)}."
            )
