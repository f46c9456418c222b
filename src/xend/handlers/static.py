"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves one directory tree. This is the terminal handler of the chain:
everything in front of it (logging, hidden-path rejection, gzip) is
middleware.

    handler = strip_prefix("/", FileServer("./public"))

=============================================================================
REQUEST FLOW
=============================================================================

    GET /docs/guide.html
        │
        ├─ method not GET/HEAD                     → 405
        ├─ clean the path ("/a/./b//c" → "/a/b/c")
        ├─ ends in /index.html                     → 301 to "./"
        ├─ resolve under root, escapes root        → 403
        ├─ stat fails                              → 404 / 403 / 500
        ├─ directory without trailing slash        → 301 to "name/"
        ├─ file with trailing slash                → 301 to "../name"
        ├─ directory: index.html inside?           → serve that file
        │             otherwise                    → <pre> listing
        └─ file:
             If-None-Match / If-Modified-Since     → 304
             Range: bytes=a-b                      → 206 / 416
             otherwise                             → 200, streamed

=============================================================================
CACHING HEADERS
=============================================================================

    Last-Modified: Sun, 18 Oct 2026 10:00:00 GMT   from mtime
    ETag: "1792317600-1043"                        "<mtime>-<size>"
    Accept-Ranges: bytes

Content-Length is set only when no Content-Encoding is present. When the
compression middleware has announced gzip, the length of the file says
nothing about the bytes on the wire, so the connection writer works the
framing out itself.

=============================================================================
"""

import html
import logging
import os
import posixpath
from dataclasses import replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from stat import S_ISDIR
from typing import List, Optional, Tuple
from urllib.parse import quote

from ..http.mime_types import SNIFF_LENGTH, lookup_mime_type, sniff_content_type, with_charset
from ..http.request import HTTPRequest
from ..http.response import format_http_date
from ..http.status_codes import HTTPStatus
from ..http.writer import ResponseWriter, http_error


logger = logging.getLogger(__name__)

INDEX_PAGE = "index.html"


class RangeNotSatisfiable(ValueError):
    """No requested range overlaps the file."""


def clean_path(path: str) -> str:
    """
    Normalise a URL path: rooted, no ".", "..", or repeated slashes.

        >>> clean_path("a/./b//../c")
        '/a/c'
        >>> clean_path("/../../etc/passwd")
        '/etc/passwd'
    """
    if not path.startswith("/"):
        path = "/" + path
    cleaned = posixpath.normpath(path)
    # POSIX keeps a leading "//" as-is
    return "/" + cleaned.lstrip("/")


def parse_range(header: str, size: int) -> Optional[List[Tuple[int, int]]]:
    """
    Parse a Range header into (start, length) pairs.

    Returns None when the header should be ignored (not a byte range,
    or malformed), in which case the whole file is served.

    Raises:
        RangeNotSatisfiable: Every range starts past the end of the file.
    """
    if not header.startswith("bytes="):
        return None

    ranges = []
    no_overlap = False

    for part in header[len("bytes="):].split(","):
        part = part.strip()
        if not part:
            continue
        start_text, sep, end_text = part.partition("-")
        if not sep:
            return None
        start_text, end_text = start_text.strip(), end_text.strip()

        try:
            if not start_text:
                # suffix range: the last N bytes
                if not end_text:
                    return None
                n = int(end_text)
                if n < 0:
                    return None
                n = min(n, size)
                if n == 0:
                    no_overlap = True
                    continue
                ranges.append((size - n, n))
                continue

            start = int(start_text)
            if start < 0:
                return None
            if start >= size:
                no_overlap = True
                continue

            if end_text:
                end = int(end_text)
                if end < start:
                    return None
                end = min(end, size - 1)
            else:
                end = size - 1
        except ValueError:
            return None

        ranges.append((start, end - start + 1))

    if not ranges:
        if no_overlap:
            raise RangeNotSatisfiable(header)
        return None

    return ranges


class FileServer:
    """
    Serves files from a root directory.

    Args:
        root_dir: Directory to serve. Nothing outside it is ever read.
        buffer_size: Chunk size used when streaming file contents.

    Usage:
        handler = FileServer("/var/www")
        handler(writer, request)
    """

    ALLOWED_METHODS = ("GET", "HEAD")

    def __init__(self, root_dir: str, buffer_size: int = 8192):
        # Resolve to absolute path (important for the traversal check)
        self.root_dir = Path(root_dir).resolve()
        self.buffer_size = buffer_size

        if not self.root_dir.is_dir():
            raise ValueError(f"Root directory does not exist: {root_dir}")

    def __call__(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        if request.method not in self.ALLOWED_METHODS:
            writer.headers["Allow"] = ", ".join(self.ALLOWED_METHODS)
            http_error(writer, "405 method not allowed", HTTPStatus.METHOD_NOT_ALLOWED)
            return

        url_path = request.path
        if not url_path.startswith("/"):
            url_path = "/" + url_path

        if url_path.endswith("/" + INDEX_PAGE):
            self._local_redirect(writer, request, "./")
            return

        name = clean_path(url_path)
        if "\x00" in name:
            http_error(writer, "404 page not found", HTTPStatus.NOT_FOUND)
            return

        full_path = (self.root_dir / name.lstrip("/")).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {request.path}")
            http_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
            return

        try:
            st = full_path.stat()
        except OSError as e:
            self._serve_os_error(writer, e)
            return

        is_dir = S_ISDIR(st.st_mode)

        # Canonical URLs: directories end in "/", files don't
        if is_dir and not url_path.endswith("/"):
            self._local_redirect(writer, request, posixpath.basename(url_path) + "/")
            return
        if not is_dir and url_path.endswith("/"):
            self._local_redirect(
                writer, request, "../" + posixpath.basename(url_path.rstrip("/"))
            )
            return

        if is_dir:
            index_path = full_path / INDEX_PAGE
            if index_path.is_file():
                full_path = index_path
            else:
                self._list_directory(writer, request, full_path)
                return

        self._serve_file(writer, request, full_path)

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    def _serve_file(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        path: Path
    ) -> None:
        try:
            f = open(path, "rb")
        except OSError as e:
            self._serve_os_error(writer, e)
            return

        with f:
            stat = os.fstat(f.fileno())
            size = stat.st_size
            mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            etag = f'"{int(stat.st_mtime)}-{size}"'

            writer.headers["Last-Modified"] = format_http_date(mtime)
            writer.headers["ETag"] = etag

            if self._not_modified(request, etag, int(stat.st_mtime)):
                self._write_not_modified(writer)
                return

            if "Content-Type" not in writer.headers:
                content_type = lookup_mime_type(path)
                if content_type is not None:
                    content_type = with_charset(content_type)
                else:
                    content_type = sniff_content_type(f.read(SNIFF_LENGTH))
                    f.seek(0)
                writer.headers["Content-Type"] = content_type

            writer.headers["Accept-Ranges"] = "bytes"

            status = HTTPStatus.OK
            start, length = 0, size

            range_header = request.get_header("range")
            if range_header:
                try:
                    ranges = parse_range(range_header, size)
                except RangeNotSatisfiable:
                    writer.headers["Content-Range"] = f"bytes */{size}"
                    http_error(
                        writer,
                        "invalid range: failed to overlap",
                        HTTPStatus.RANGE_NOT_SATISFIABLE
                    )
                    return

                # Multi-range requests are answered with the whole file
                if ranges is not None and len(ranges) == 1:
                    start, length = ranges[0]
                    status = HTTPStatus.PARTIAL_CONTENT
                    writer.headers["Content-Range"] = (
                        f"bytes {start}-{start + length - 1}/{size}"
                    )

            if "Content-Encoding" not in writer.headers:
                writer.headers["Content-Length"] = str(length)

            writer.write_header(status)

            if request.method == "HEAD":
                return

            f.seek(start)
            remaining = length
            while remaining > 0:
                chunk = f.read(min(self.buffer_size, remaining))
                if not chunk:
                    break
                writer.write(chunk)
                remaining -= len(chunk)

    def _not_modified(self, request: HTTPRequest, etag: str, mtime: int) -> bool:
        if_none_match = request.get_header("if-none-match")
        if if_none_match:
            return _etag_matches(if_none_match, etag)

        if_modified_since = request.get_header("if-modified-since")
        if if_modified_since:
            try:
                since = parsedate_to_datetime(if_modified_since)
            except (TypeError, ValueError):
                return False
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            return mtime <= since.timestamp()

        return False

    def _write_not_modified(self, writer: ResponseWriter) -> None:
        headers = writer.headers
        for name in ("Content-Type", "Content-Length", "Content-Encoding"):
            headers.pop(name, None)
        if "ETag" in headers:
            headers.pop("Last-Modified", None)
        writer.write_header(HTTPStatus.NOT_MODIFIED)

    # ─────────────────────────────────────────────────────────────────────
    # DIRECTORIES
    # ─────────────────────────────────────────────────────────────────────

    def _list_directory(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        path: Path
    ) -> None:
        try:
            entries = sorted(os.scandir(path), key=lambda entry: entry.name)
        except OSError as e:
            logger.error(f"Error reading directory {path}: {e}")
            http_error(writer, "Error reading directory", HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        lines = [
            "<!doctype html>",
            '<meta name="viewport" content="width=device-width">',
            "<pre>",
        ]
        for entry in entries:
            name = entry.name
            if entry.is_dir():
                name += "/"
            href = quote(name)
            # A name like "a:b" would otherwise read as a URL scheme
            if ":" in name.split("/")[0]:
                href = "./" + href
            lines.append(f'<a href="{html.escape(href)}">{html.escape(name)}</a>')
        lines.append("</pre>")

        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        writer.write_header(HTTPStatus.OK)
        if request.method != "HEAD":
            writer.write(("\n".join(lines) + "\n").encode("utf-8"))

    # ─────────────────────────────────────────────────────────────────────
    # ERRORS AND REDIRECTS
    # ─────────────────────────────────────────────────────────────────────

    def _serve_os_error(self, writer: ResponseWriter, error: OSError) -> None:
        if isinstance(error, (FileNotFoundError, NotADirectoryError)):
            http_error(writer, "404 page not found", HTTPStatus.NOT_FOUND)
        elif isinstance(error, PermissionError):
            http_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
        else:
            logger.error(f"Error serving file: {error}")
            http_error(writer, "500 Internal Server Error", HTTPStatus.INTERNAL_SERVER_ERROR)

    def _local_redirect(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        target: str
    ) -> None:
        location = quote(target)
        if request.query:
            location += "?" + request.query

        writer.headers["Location"] = location
        if request.method == "GET" and "Content-Type" not in writer.headers:
            writer.headers["Content-Type"] = "text/html; charset=utf-8"
            writer.write_header(HTTPStatus.MOVED_PERMANENTLY)
            body = f'<a href="{html.escape(location)}">Moved Permanently</a>.\n\n'
            writer.write(body.encode("utf-8"))
            return

        writer.write_header(HTTPStatus.MOVED_PERMANENTLY)


def _etag_matches(header: str, etag: str) -> bool:
    # Weak comparison: W/"x" and "x" are the same validator
    def opaque(tag: str) -> str:
        tag = tag.strip()
        return tag[2:] if tag.startswith("W/") else tag

    for candidate in header.split(","):
        candidate = candidate.strip()
        if candidate == "*" or opaque(candidate) == opaque(etag):
            return True
    return False


def strip_prefix(prefix: str, handler):
    """
    Serve requests under `prefix` with the prefix removed from the path.

        strip_prefix("/", FileServer("."))      "/a/b.txt" → "a/b.txt"
        strip_prefix("/static", files)          "/static/x.css" → "/x.css"

    Requests outside the prefix get 404. The handler sees a copy of the
    request; the raw URI is kept for logging.
    """

    def stripped(writer: ResponseWriter, request: HTTPRequest) -> None:
        if not request.path.startswith(prefix):
            http_error(writer, "404 page not found", HTTPStatus.NOT_FOUND)
            return
        handler(writer, replace(request, path=request.path[len(prefix):]))

    return stripped
