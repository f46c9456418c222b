"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, wrapped around the file handler:

    LoggingMiddleware:
        One access log line per request: client, request line, status,
        bytes written, duration.

    SecurityMiddleware:
        404 for any path with a segment starting with ".".

    CompressionMiddleware:
        gzip response bodies when the client accepts gzip.

compose_middlewares() builds the standard chain in that order.

=============================================================================
"""

from .base import Handler, Middleware, MiddlewarePipeline, compose_middlewares
from .logging import (
    InstrumentedResponseWriter,
    LoggingMiddleware,
    format_duration,
)
from .security import SecurityMiddleware, is_hidden_path
from .compression import (
    CompressionMiddleware,
    CompressionResponseWriter,
    GzipWriter,
)

__all__ = [
    # Base classes
    "Handler",
    "Middleware",
    "MiddlewarePipeline",
    "compose_middlewares",

    # Built-in middleware
    "LoggingMiddleware",
    "SecurityMiddleware",
    "CompressionMiddleware",

    # Helpers
    "InstrumentedResponseWriter",
    "CompressionResponseWriter",
    "GzipWriter",
    "format_duration",
    "is_hidden_path",
]
