"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

Writes one log line per request once the response is complete:

    127.0.0.1:51234 - "GET /index.html HTTP/1.1" 200 1043 1.204ms
    └──────┬──────┘    └──────────┬───────────┘  └┬┘ └─┬┘ └──┬──┘
      client addr          request line       status size  duration

    - status is the code the handler chose, 200 if it never chose one
    - size is the number of body bytes that went out, so gzip responses
      log their compressed size
    - duration uses the shortest unit that fits: ns, µs, ms or s

Lines go to the "xend.access" logger at INFO level:

    logging.getLogger("xend.access").addHandler(file_handler)

=============================================================================
"""

import logging
import time
from typing import Optional

from .base import Middleware, Handler
from ..http.request import HTTPRequest
from ..http.status_codes import HTTPStatus
from ..http.writer import ResponseWriter


ACCESS_LOGGER_NAME = "xend.access"
ACCESS_LOG_FORMAT = '%s - "%s %s %s" %d %d %s'

access_logger = logging.getLogger(ACCESS_LOGGER_NAME)


def _trim_fraction(value: int, digits: int) -> str:
    # value is in units of 10**-digits; trailing zeros are dropped
    whole, frac = divmod(value, 10 ** digits)
    if not frac:
        return str(whole)
    return f"{whole}.{frac:0{digits}d}".rstrip("0")


def format_duration(seconds: float) -> str:
    """
    Render a duration the way Go's time.Duration prints it.

        >>> format_duration(0.000000512)
        '512ns'
        >>> format_duration(0.0012)
        '1.2ms'
        >>> format_duration(95.5)
        '1m35.5s'
    """
    ns = round(seconds * 1_000_000_000)
    if ns == 0:
        return "0s"

    sign = "-" if ns < 0 else ""
    ns = abs(ns)

    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_trim_fraction(ns, 3)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_trim_fraction(ns, 6)}ms"

    total_seconds, frac_ns = divmod(ns, 1_000_000_000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, secs = divmod(rest, 60)

    out = _trim_fraction(secs * 1_000_000_000 + frac_ns, 9) + "s"
    if hours:
        out = f"{hours}h{minutes}m{out}"
    elif minutes:
        out = f"{minutes}m{out}"
    return sign + out


class InstrumentedResponseWriter(ResponseWriter):
    """
    Records the status code and body size passing through a writer.

    Attributes:
        status_code: Status of the last write_header() before the body,
                     200 if there was none.
        size: Body bytes accepted by the inner writer.
        header_written: Whether a status has been committed.
    """

    def __init__(self, inner: ResponseWriter):
        self.inner = inner
        self.status_code = HTTPStatus.OK
        self.size = 0
        self.header_written = False
        self._body_started = False

    @property
    def headers(self):
        return self.inner.headers

    def write_header(self, status: int) -> None:
        if not self._body_started:
            self.status_code = status
        self.header_written = True
        self.inner.write_header(status)

    def write(self, data: bytes) -> int:
        self.header_written = True
        self._body_started = True
        n = self.inner.write(data)
        self.size += n
        return n


class LoggingMiddleware(Middleware):
    """
    Access logging middleware.

    Should be FIRST in the pipeline so that requests rejected by later
    middleware are logged too.

    If the handler raises, the request is logged with status 500 (unless
    a status was already sent) and the exception propagates.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.INFO,
    ):
        self.logger = logger or access_logger
        self.log_level = log_level

    def __call__(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        next: Handler
    ) -> None:
        start_time = time.perf_counter()
        recorder = InstrumentedResponseWriter(writer)

        try:
            next(recorder, request)
        except Exception:
            if not recorder.header_written:
                recorder.status_code = HTTPStatus.INTERNAL_SERVER_ERROR
            raise
        finally:
            duration = time.perf_counter() - start_time
            self.logger.log(
                self.log_level,
                ACCESS_LOG_FORMAT,
                request.remote_addr,
                request.method,
                request.uri,
                request.version,
                recorder.status_code,
                recorder.size,
                format_duration(duration),
            )
