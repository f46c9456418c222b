"""
Unit tests for the middleware pipeline and the standard chain.
"""

import gzip
import logging

from xend.middleware import Middleware, MiddlewarePipeline, compose_middlewares
from xend.middleware.logging import ACCESS_LOGGER_NAME

from conftest import make_request


class Trace(Middleware):
    """Appends its label before and after calling next."""

    def __init__(self, label, events):
        self.label = label
        self.events = events

    def __call__(self, writer, request, next):
        self.events.append(f"{self.label}:in")
        next(writer, request)
        self.events.append(f"{self.label}:out")


class Stop(Middleware):
    def __call__(self, writer, request, next):
        writer.write_header(403)


class TestMiddlewarePipeline:
    """Tests for MiddlewarePipeline."""

    def test_first_added_is_outermost(self, recorder):
        events = []
        pipeline = MiddlewarePipeline()
        pipeline.add(Trace("a", events)).add(Trace("b", events))

        handler = pipeline.wrap(lambda w, r: events.append("handler"))
        handler(recorder, make_request("/"))

        assert events == ["a:in", "b:in", "handler", "b:out", "a:out"]

    def test_use_adds_in_order(self):
        events = []
        first, second = Trace("a", events), Trace("b", events)
        pipeline = MiddlewarePipeline().use(first, second)

        assert len(pipeline) == 2
        assert list(pipeline) == [first, second]

    def test_short_circuit(self, recorder):
        events = []
        handler = MiddlewarePipeline().use(
            Trace("a", events), Stop()
        ).wrap(lambda w, r: events.append("handler"))

        handler(recorder, make_request("/"))

        assert events == ["a:in", "a:out"]
        assert recorder.status == 403

    def test_empty_pipeline_returns_handler(self):
        def handler(writer, request):
            pass

        assert MiddlewarePipeline().wrap(handler) is handler

    def test_name(self):
        assert Stop().name == "Stop"


class TestComposeMiddlewares:
    """Tests for the logging → security → compression chain."""

    def test_hidden_path_is_logged_and_uncompressed(self, recorder, caplog):
        """Test that the 404 for a dotfile skips gzip but still gets logged."""
        caplog.set_level(logging.INFO, logger=ACCESS_LOGGER_NAME)
        calls = []

        handler = compose_middlewares(lambda w, r: calls.append(r))
        handler(recorder, make_request("/.env", headers={"Accept-Encoding": "gzip"}))

        assert calls == []
        assert recorder.status == 404
        assert "Content-Encoding" not in recorder.sent_headers
        assert bytes(recorder.body) == b"404 page not found"

        messages = [r.getMessage() for r in caplog.records if r.name == ACCESS_LOGGER_NAME]
        assert len(messages) == 1
        assert '"GET /.env HTTP/1.1" 404 18 ' in messages[0]

    def test_visible_path_is_compressed(self, recorder):
        def hello(writer, request):
            writer.headers["Content-Type"] = "text/plain"
            writer.write(b"hello")

        handler = compose_middlewares(hello, compression_level=9)
        handler(recorder, make_request("/hello.txt", headers={"Accept-Encoding": "gzip"}))

        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert gzip.decompress(bytes(recorder.body)) == b"hello"

    def test_custom_access_logger(self, recorder, caplog):
        caplog.set_level(logging.INFO, logger="tests.custom")

        handler = compose_middlewares(
            lambda w, r: None, access_logger=logging.getLogger("tests.custom")
        )
        handler(recorder, make_request("/"))

        assert [r.name for r in caplog.records if r.name == "tests.custom"] == ["tests.custom"]
