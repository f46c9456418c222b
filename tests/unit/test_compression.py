"""
Unit tests for gzip compression.
"""

import gzip

import pytest

from xend.http.writer import BodyNotAllowedError
from xend.middleware.compression import (
    CompressionMiddleware,
    CompressionResponseWriter,
    GzipWriter,
)

from conftest import ResponseRecorder, make_request


TEXT = b"the quick brown fox jumps over the lazy dog\n" * 200


def write_text(writer, request):
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.write(TEXT[:1000])
    writer.write(TEXT[1000:])


class StrictRecorder(ResponseRecorder):
    """Refuses body bytes on a 304, like the connection writer."""

    def write(self, data: bytes) -> int:
        if self.status == 304:
            raise BodyNotAllowedError("response with status 304 cannot have a body")
        return super().write(data)


class TestGzipWriter:
    """Tests for the streaming compressor."""

    def test_stream_round_trip(self, recorder):
        with GzipWriter(recorder) as gz:
            gz.write(b"hello ")
            gz.write(b"world")

        assert gz.closed is True
        assert gzip.decompress(bytes(recorder.body)) == b"hello world"

    def test_nothing_emitted_before_first_write(self, recorder):
        gz = GzipWriter(recorder)

        assert gz.started is False
        assert recorder.body == b""

        gz.write(b"a")
        gz.close()
        assert gz.started is True
        assert gzip.decompress(bytes(recorder.body)) == b"a"

    def test_write_after_close(self, recorder):
        gz = GzipWriter(recorder)
        gz.close()

        with pytest.raises(ValueError):
            gz.write(b"late")

    def test_exception_before_output_emits_nothing(self, recorder):
        """Test that a failing block leaves the response untouched."""
        with pytest.raises(RuntimeError):
            with GzipWriter(recorder) as gz:
                raise RuntimeError("boom")

        assert gz.closed is True
        assert recorder.status is None
        assert recorder.body == b""

    def test_close_errors_are_swallowed(self):
        """Test that a trailer refused by the writer doesn't escape."""
        recorder = StrictRecorder()
        recorder.write_header(304)

        with GzipWriter(recorder):
            pass

        assert recorder.status == 304
        assert recorder.body == b""


class TestCompressionMiddleware:
    """Tests for CompressionMiddleware."""

    def test_compresses_when_accepted(self, recorder):
        middleware = CompressionMiddleware()
        request = make_request("/a.txt", headers={"Accept-Encoding": "gzip, deflate, br"})

        middleware(recorder, request, write_text)

        assert recorder.status == 200
        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert len(recorder.body) < len(TEXT)
        assert gzip.decompress(bytes(recorder.body)) == TEXT

    def test_match_is_case_insensitive(self, recorder):
        request = make_request("/a.txt", headers={"Accept-Encoding": "GZIP"})

        CompressionMiddleware()(recorder, request, write_text)

        assert gzip.decompress(bytes(recorder.body)) == TEXT

    @pytest.mark.parametrize("accept", [None, "", "deflate", "br, identity"])
    def test_passthrough_without_gzip(self, recorder, accept):
        headers = {"Accept-Encoding": accept} if accept is not None else {}
        request = make_request("/a.txt", headers=headers)

        CompressionMiddleware()(recorder, request, write_text)

        assert "Content-Encoding" not in recorder.headers
        assert bytes(recorder.body) == TEXT

    def test_head_emits_no_gzip_stream(self, recorder):
        """Test that HEAD gets the gzip headers but no stream bytes."""
        def head_only(writer, request):
            writer.headers["Content-Type"] = "text/plain; charset=utf-8"
            writer.write_header(200)

        request = make_request("/a.txt", method="HEAD", headers={"Accept-Encoding": "gzip"})
        CompressionMiddleware()(recorder, request, head_only)

        assert recorder.status == 200
        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert recorder.writes == []
        assert bytes(recorder.body) == b""

    def test_encoding_announced_before_handler(self, recorder):
        """Test that the handler already sees Content-Encoding."""
        seen = {}

        def handler(writer, request):
            seen.update(writer.headers)

        request = make_request("/", headers={"Accept-Encoding": "gzip"})
        CompressionMiddleware()(recorder, request, handler)

        assert seen["Content-Encoding"] == "gzip"

    def test_status_is_forwarded(self, recorder):
        def not_found(writer, request):
            writer.headers["Content-Type"] = "text/plain; charset=utf-8"
            writer.write_header(404)
            writer.write(b"404 page not found\n")

        request = make_request("/missing", headers={"Accept-Encoding": "gzip"})
        CompressionMiddleware()(recorder, request, not_found)

        assert recorder.status == 404
        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert gzip.decompress(bytes(recorder.body)) == b"404 page not found\n"

    def test_empty_body_is_valid_gzip(self, recorder):
        request = make_request("/", headers={"Accept-Encoding": "gzip"})

        CompressionMiddleware()(recorder, request, lambda w, r: None)

        assert gzip.decompress(bytes(recorder.body)) == b""

    def test_handler_exception_propagates(self, recorder):
        def broken(writer, request):
            raise RuntimeError("disk on fire")

        request = make_request("/", headers={"Accept-Encoding": "gzip"})

        with pytest.raises(RuntimeError):
            CompressionMiddleware()(recorder, request, broken)

        assert recorder.status is None
        assert recorder.body == b""

    @pytest.mark.parametrize("level", [0, 10, -1])
    def test_invalid_level(self, level):
        with pytest.raises(ValueError):
            CompressionMiddleware(level=level)


class TestCompressionResponseWriter:
    """Tests for the compressing writer wrapper."""

    def test_headers_are_shared(self, recorder):
        writer = CompressionResponseWriter(recorder, GzipWriter(recorder))
        writer.headers["X-Test"] = "1"

        assert recorder.headers["X-Test"] == "1"

    def test_encoding_set_once(self, recorder):
        writer = CompressionResponseWriter(recorder, GzipWriter(recorder))
        writer.write_header(200)
        writer.write_header(500)

        assert writer.is_compressed is True
        assert recorder.header_calls == [200, 500]
        assert recorder.status == 200
        assert recorder.sent_headers["Content-Encoding"] == "gzip"
