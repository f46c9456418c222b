"""
=============================================================================
COMPRESSION MIDDLEWARE
=============================================================================

Gzips response bodies for clients that accept it.

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Request:
    ┌───────────────────────────────────────────────────────────────┐
    │ GET /app.js HTTP/1.1                                          │
    │ Accept-Encoding: gzip, deflate, br                            │
    └───────────────────────────────────────────────────────────────┘

    Response:
    ┌───────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK                                               │
    │ Content-Type: text/javascript; charset=utf-8                  │
    │ Content-Encoding: gzip                                        │
    │ Transfer-Encoding: chunked   (or Content-Length if small)     │
    │                                                               │
    │ [gzip stream]                                                 │
    └───────────────────────────────────────────────────────────────┘

The match is a plain substring test for "gzip" in Accept-Encoding
(case-insensitive). q-values are not interpreted, so "gzip;q=0" still
counts as accepting gzip.

Every body is compressed, whatever its type or size. Content-Encoding is
set BEFORE the handler runs: the file handler sees it and leaves out
Content-Length, which would describe the uncompressed file.

=============================================================================
STREAMING
=============================================================================

The body is compressed as the handler writes it, it is never held in
memory as a whole:

    handler.write(chunk)
        → GzipWriter.write(chunk)         zlib compressobj
            → inner.write(compressed)     whatever zlib emitted

Nothing reaches the inner writer before the handler's first write, so a
handler that fails before writing can still be answered with a 500.

A HEAD response carries the same headers as the GET would, but no gzip
stream is finished for it: even an empty stream is 20 bytes, and the
connection writer would report those as the body length.

=============================================================================
"""

import zlib

from .base import Middleware, Handler
from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter


# wbits for zlib: 16 + MAX_WBITS selects the gzip container format
GZIP_WBITS = 16 + zlib.MAX_WBITS


class GzipWriter:
    """
    A streaming gzip compressor writing into a ResponseWriter.

        with GzipWriter(writer, level=6) as gz:
            gz.write(b"hello")
        # on a clean exit the gzip trailer has been written

    The stream is closed however the block exits. The one exception is a
    block that raises before any compressed byte reached the inner writer:
    then nothing is emitted at all, so the failed request can still be
    answered with a 500.
    """

    def __init__(self, target: ResponseWriter, level: int = 6):
        self._target = target
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, GZIP_WBITS)
        self.started = False
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed GzipWriter")
        self._emit(self._compressor.compress(data))
        return len(data)

    def flush(self) -> None:
        """Push everything compressed so far to the inner writer."""
        if self.closed:
            return
        self._emit(self._compressor.flush(zlib.Z_SYNC_FLUSH))

    def close(self) -> None:
        """Finish the gzip stream: pending data plus CRC/size trailer."""
        if self.closed:
            return
        self.closed = True
        self._emit(self._compressor.flush(zlib.Z_FINISH))

    def _emit(self, compressed: bytes) -> None:
        if compressed:
            self.started = True
            self._target.write(compressed)

    def __enter__(self) -> "GzipWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and not self.started:
            self.closed = True
            return False

        try:
            self.close()
        except (OSError, ValueError):
            # Client gone, or the status forbids a body (304 on a gzip
            # negotiated request). The response is already decided.
            pass
        return False


class CompressionResponseWriter(ResponseWriter):
    """
    Routes body bytes through a GzipWriter.

    write_header() marks the response as gzip-encoded (once) and
    forwards the status untouched.
    """

    def __init__(self, inner: ResponseWriter, compressor: GzipWriter):
        self.inner = inner
        self.compressor = compressor
        self.is_compressed = False

    @property
    def headers(self):
        return self.inner.headers

    def write_header(self, status: int) -> None:
        if not self.is_compressed:
            self.inner.headers["Content-Encoding"] = "gzip"
            self.is_compressed = True
        self.inner.write_header(status)

    def write(self, data: bytes) -> int:
        return self.compressor.write(data)


class CompressionMiddleware(Middleware):
    """
    Response compression middleware.

        pipeline.add(CompressionMiddleware())          # level 6
        pipeline.add(CompressionMiddleware(level=1))   # fastest
    """

    def __init__(self, level: int = 6):
        """
        Args:
            level: Compression level (1-9).
                   1 = fastest, least compression
                   6 = balanced (default)
                   9 = slowest, best compression
        """
        if not 1 <= level <= 9:
            raise ValueError(f"compression level must be 1-9, got {level}")
        self.level = level

    def __call__(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        next: Handler
    ) -> None:
        if "gzip" not in request.accept_encoding.lower():
            next(writer, request)
            return

        writer.headers["Content-Encoding"] = "gzip"

        compressing = CompressionResponseWriter(writer, GzipWriter(writer, level=self.level))
        if request.method == "HEAD":
            # No body is sent, so the stream is never finished
            next(compressing, request)
            return

        with compressing.compressor:
            next(compressing, request)
