"""
pytest configuration and fixtures.
"""

import http.client
from pathlib import Path
from typing import Dict, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from xend import HTTPServer, ServerConfig, ServerState
from xend.http import HTTPRequest, ResponseWriter


class ResponseRecorder(ResponseWriter):
    """
    In-memory ResponseWriter for handler and middleware tests.

    Records what a connection writer would have received: the first
    status, a snapshot of the headers at that moment, and the body.
    """

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.status: Optional[int] = None
        self.sent_headers: Dict[str, str] = {}
        self.header_calls: List[int] = []
        self.writes: List[bytes] = []
        self.body = bytearray()

    def write_header(self, status: int) -> None:
        self.header_calls.append(status)
        if self.status is None:
            self.status = status
            self.sent_headers = dict(self.headers)

    def write(self, data: bytes) -> int:
        if self.status is None:
            self.write_header(200)
        self.writes.append(bytes(data))
        self.body += data
        return len(data)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


def make_request(
    path: str = "/",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    version: str = "HTTP/1.1",
) -> HTTPRequest:
    """Build an HTTPRequest the way the parser would."""
    return HTTPRequest(
        method=method,
        path=path,
        uri=path,
        version=version,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        client_address=("127.0.0.1", 54321),
    )


@pytest.fixture
def recorder() -> ResponseRecorder:
    return ResponseRecorder()


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/guide.txt?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    head = (
        "POST /upload HTTP/1.1\r\n"
        "Host: localhost:8000\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("latin-1") + body


APP_JS = b"function greet(name) { return 'hello ' + name; }\n" * 2000


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """
    A small site to serve:

        index.html  hello.txt  app.js (~100 KB)  data.bin  notes
        docs/guide.txt  empty/
        .env  .git/config  docs/.secret
    """
    root = tmp_path / "site"
    root.mkdir()

    (root / "index.html").write_text("<!doctype html><h1>home</h1>\n")
    (root / "hello.txt").write_text("hello world\n")
    (root / "app.js").write_bytes(APP_JS)
    (root / "data.bin").write_bytes(bytes(range(256)))
    (root / "notes").write_text("no extension here\n")

    (root / "docs").mkdir()
    (root / "docs" / "guide.txt").write_text("the guide\n")
    (root / "docs" / ".secret").write_text("hidden\n")
    (root / "empty").mkdir()

    (root / ".env").write_text("SECRET=1\n")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\n")

    return root


@pytest.fixture
def config(site_dir: Path) -> ServerConfig:
    """Test server configuration on an ephemeral port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        directory=str(site_dir),
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        shutdown_timeout=2.0,
    )


@pytest.fixture
def live_server(config: ServerConfig) -> Generator[HTTPServer, None, None]:
    """A started server; stopped again after the test."""
    server = HTTPServer(config)
    server.start()

    yield server

    if server.state != ServerState.STOPPED:
        server.shutdown(timeout=1.0)


def get(
    server: HTTPServer,
    path: str,
    headers: Optional[Dict[str, str]] = None,
    method: str = "GET",
) -> http.client.HTTPResponse:
    """Make one request to a live server; the body is read eagerly."""
    host, port = server.address
    conn = http.client.HTTPConnection(host, port, timeout=5)
    try:
        conn.request(method, path, headers=headers or {})
        response = conn.getresponse()
        response.body = response.read()
        return response
    finally:
        conn.close()
