"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.x request bytes into HTTPRequest objects (RFC 9112).

    GET /docs/index.html?v=2 HTTP/1.1\r\n       ← request line
    Host: localhost:8000\r\n                     ← headers
    Accept-Encoding: gzip, deflate\r\n
    \r\n                                         ← end of headers
    [body]                                       ← Content-Length bytes

Two forms of the request target are kept:

    uri     the raw target exactly as sent ("/a%20b?x=1"), used in the
            access log
    path    the percent-decoded path without query ("/a b"), used for
            hidden-path checks and file resolution

Header names are normalised to lowercase since they are case-insensitive.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to return to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Treated as immutable while it flows through the handler chain.
    Handlers that need a different path (like the prefix strip) make a
    copy with dataclasses.replace().
    """

    method: str
    path: str
    uri: str = ""
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        if not self.uri:
            self.uri = self.path

    @property
    def query(self) -> str:
        """Raw query string (without the leading '?')."""
        return urlsplit(self.uri).query

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def accept_encoding(self) -> str:
        """The Accept-Encoding header, empty if the client sent none."""
        return self.headers.get("accept-encoding", "")

    @property
    def remote_addr(self) -> str:
        """
        Client address as "ip:port".

        IPv6 addresses are bracketed: "[::1]:51234".
        """
        ip, port = self.client_address[0], self.client_address[1]
        if ":" in ip:
            return f"[{ip}]:{port}"
        return f"{ip}:{port}"

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if the client wants the connection kept open.

        HTTP/1.1 keeps alive unless "Connection: close" is sent;
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.
        """
        tokens = {
            token.strip().lower()
            for token in self.headers.get("connection", "").split(",")
        }

        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        1. Size check                  → 413 if too large
        2. Split headers from body     → 400 if no \\r\\n\\r\\n
        3. Request line                → 400 / 405 / 505
        4. Headers                     → lowercase names, folded lines joined
        5. Body                        → exactly Content-Length bytes

    REQUEST_LINE_PATTERN: ^([A-Z]+) ([^ ]+) (HTTP/\\d\\.\\d)$
        method, request target and version separated by single spaces.
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: One complete request, as returned by
                  Connection.read_request().
            client_address: (ip, port) of the peer.

        Raises:
            HTTPParseError: With the status code to send back.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, uri, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            uri=uri,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str, Dict[str, list[str]], str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        # Absolute-form targets ("http://host/path") are reduced to their path
        parsed = urlsplit(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, uri, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            # obs-fold: continuation of the previous header
            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """Parse a request with a throwaway parser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
