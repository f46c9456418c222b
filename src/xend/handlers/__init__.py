"""
Request handlers.

The only terminal handler xend needs is the static file server:

    from xend.handlers import FileServer, strip_prefix

    handler = strip_prefix("/", FileServer("./public"))
"""

from .static import FileServer, clean_path, parse_range, strip_prefix

__all__ = [
    "FileServer",
    "clean_path",
    "parse_range",
    "strip_prefix",
]
