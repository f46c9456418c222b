"""
=============================================================================
SECURITY MIDDLEWARE
=============================================================================

Keeps dotfiles and dot-directories private.

A served directory often contains things nobody meant to publish:

    ./public/.git/config
    ./public/.env
    ./public/assets/.DS_Store

Any request whose path has a segment starting with "." is answered with
404 Not Found, as if the file didn't exist. The file handler never runs.

    /index.html            → served
    /.env                  → 404
    /docs/.git/HEAD        → 404
    /a/../b                → 404 (".." starts with a dot too)
    /..                    → 404
    /file.tar.gz           → served (dot not at the start of a segment)

The check runs on the percent-decoded path, so "/%2Egit/config" is
rejected as well.

=============================================================================
"""

import logging

from .base import Middleware, Handler
from ..http.request import HTTPRequest
from ..http.status_codes import HTTPStatus
from ..http.writer import ResponseWriter


logger = logging.getLogger(__name__)

NOT_FOUND_BODY = b"404 page not found"


def is_hidden_path(path: str) -> bool:
    """
    Check if any segment of a URL path begins with ".".

    One leading "/" is ignored and the rest is split on "/". Empty
    segments (from "//" or a trailing "/") are not hidden.

        >>> is_hidden_path("/.git/config")
        True
        >>> is_hidden_path("/notes.txt")
        False
    """
    if path.startswith("/"):
        path = path[1:]
    return any(segment.startswith(".") for segment in path.split("/"))


class SecurityMiddleware(Middleware):
    """Rejects hidden paths with 404 before the request reaches a handler."""

    def __call__(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        next: Handler
    ) -> None:
        if is_hidden_path(request.path):
            logger.debug(f"Rejected hidden path: {request.path}")
            writer.headers["Content-Type"] = "text/plain; charset=utf-8"
            writer.write_header(HTTPStatus.NOT_FOUND)
            writer.write(NOT_FOUND_BODY)
            return

        next(writer, request)
