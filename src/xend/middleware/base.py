"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline that chains middleware
around the file handler (Chain of Responsibility).

A handler here doesn't return a response. It receives a ResponseWriter and
writes to it:

    Handler = Callable[[ResponseWriter, HTTPRequest], None]

A middleware is a handler that also receives `next`. It can:

    - do work before calling next(writer, request)
    - call next with a WRAPPED writer to observe or transform the output
    - answer the request itself and never call next (short-circuit)

=============================================================================
THE XEND CHAIN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   Request ──►  Logging  ──►  Security  ──►  Compression ──►  Files  │
    │                   │             │                │                  │
    │                times +       404 for         gzip body if           │
    │                logs the      hidden paths    client accepts         │
    │                final status  (stops here)    it                     │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

Logging is outermost so it sees every request, including the ones the
security check rejects, and records the size AFTER compression.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter


logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIAS
# =============================================================================

# The signature of the final handler and of every wrapped stage.
Handler = Callable[[ResponseWriter, HTTPRequest], None]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class AddHeader(Middleware):
            def __call__(self, writer, request, next):
                writer.headers["X-Served-By"] = "xend"
                next(writer, request)
    """

    @abstractmethod
    def __call__(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        next: Handler
    ) -> None:
        """
        Process the request.

        Args:
            writer: Where the response goes.
            request: The incoming HTTP request.
            next: The next stage. Call it to continue the chain.
        """

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.use(LoggingMiddleware(), SecurityMiddleware(), CompressionMiddleware())
        handler = pipeline.wrap(FileServer("."))

        handler(writer, request)   # Logging → Security → Compression → files
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Add middleware to the pipeline. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Add several middleware at once, in order."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """
        Wrap a handler with all middleware in the pipeline.

        Given [MW1, MW2, MW3] the result is MW1 → MW2 → MW3 → handler.
        We wrap in REVERSE order so that the first-added middleware is
        the outermost wrapper.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: Handler
    ) -> Handler:
        def wrapped(writer: ResponseWriter, request: HTTPRequest) -> None:
            middleware(writer, request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


def compose_middlewares(
    handler: Handler,
    access_logger: Optional[logging.Logger] = None,
    compression_level: int = 6,
) -> Handler:
    """
    Build the xend chain: logging → security → compression → handler.

    Args:
        handler: The innermost handler, normally a FileServer.
        access_logger: Where access lines go (default "xend.access").
        compression_level: gzip level, 1 (fastest) to 9 (smallest).
    """
    # Imported here: the concrete middleware modules import this one
    from .compression import CompressionMiddleware
    from .logging import LoggingMiddleware
    from .security import SecurityMiddleware

    pipeline = MiddlewarePipeline()
    pipeline.use(
        LoggingMiddleware(logger=access_logger),
        SecurityMiddleware(),
        CompressionMiddleware(level=compression_level),
    )
    return pipeline.wrap(handler)
