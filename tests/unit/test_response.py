"""
Unit tests for HTTP response serialization.
"""

from datetime import datetime, timezone, timedelta

from xend.http.response import (
    HTTPResponse,
    HTTPStatus,
    format_http_date,
    plain_text_response,
    serialize_head,
)
from xend.http.status_codes import body_allowed, reason_phrase


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

        response = HTTPResponse(status=HTTPStatus.OK, version="HTTP/1.0")
        assert response.status_line == "HTTP/1.0 200 OK"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert b"HTTP/1.1 200 OK\r\n" in result
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"\r\n\r\ntest" in result

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is auto-set."""
        response = HTTPResponse(body=b"hello world")
        result = response.to_bytes()

        assert b"Content-Length: 11\r\n" in result

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers == {"X-One": "1", "X-Two": "2"}

    def test_server_name(self):
        result = HTTPResponse().to_bytes(server_name="xend/9.9")

        assert b"Server: xend/9.9\r\n" in result


class TestPlainTextResponse:
    """Tests for plain_text_response()."""

    def test_error_reply(self):
        response = plain_text_response(HTTPStatus.BAD_REQUEST, "400 Bad Request")

        assert response.status == 400
        assert response.body == b"400 Bad Request\n"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.headers["Connection"] == "close"

    def test_keep_open(self):
        response = plain_text_response(HTTPStatus.NOT_FOUND, "gone", close=False)

        assert "Connection" not in response.headers


class TestSerializeHead:
    """Tests for serialize_head()."""

    def test_head_layout(self):
        head = serialize_head("HTTP/1.1", 206, {"Content-Range": "bytes 0-4/12"})

        assert head.startswith(b"HTTP/1.1 206 Partial Content\r\n")
        assert b"Content-Range: bytes 0-4/12\r\n" in head
        assert b"Date: " in head
        assert head.endswith(b"\r\n\r\n")

    def test_caller_headers_untouched(self):
        headers = {"X-A": "1"}
        serialize_head("HTTP/1.1", 200, headers)

        assert headers == {"X-A": "1"}

    def test_unknown_status(self):
        assert serialize_head("HTTP/1.1", 299, {}).startswith(b"HTTP/1.1 299 Unknown\r\n")


class TestStatusCodes:
    """Tests for status helpers."""

    def test_phrases(self):
        assert HTTPStatus.NOT_MODIFIED.phrase == "Not Modified"
        assert reason_phrase(416) == "Range Not Satisfiable"
        assert reason_phrase(799) == "Unknown"

    def test_body_allowed(self):
        assert body_allowed(200) is True
        assert body_allowed(404) is True
        assert body_allowed(204) is False
        assert body_allowed(304) is False
        assert body_allowed(101) is False


class TestFormatHttpDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        dt = datetime(2026, 10, 18, 10, 0, 0, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Sun, 18 Oct 2026 10:00:00 GMT"

    def test_converts_to_gmt(self):
        dt = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_http_date(dt) == "Sun, 18 Oct 2026 10:00:00 GMT"

    def test_default_is_now(self):
        assert format_http_date().endswith(" GMT")
