"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Picks the Content-Type for served files.

Two strategies, tried in order:

    1. EXTENSION LOOKUP   style.css  → text/css; charset=utf-8
    2. CONTENT SNIFFING   first bytes of the body, for unknown extensions
                          and for responses whose handler set no type

Sniffing only recognises a handful of signatures. Anything that decodes
as UTF-8 is served as text/plain, everything else as
application/octet-stream.

=============================================================================
"""

from pathlib import Path
from typing import Optional, Union


# =============================================================================
# MIME TYPE DATABASE
# =============================================================================
#
# Maps file extensions (lowercase, with dot) to MIME types.
#
# =============================================================================

MIME_TYPES = {
    # Text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",

    # Data / other
    ".wasm": "application/wasm",
    ".map": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# How much of a body the sniffer looks at
SNIFF_LENGTH = 512

# (prefix, mime type) signatures, checked in order
_SIGNATURES = (
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x00asm", "application/wasm"),
)

_HTML_MARKERS = (b"<!doctype html", b"<html", b"<head", b"<body", b"<script", b"<p", b"<!--")


def lookup_mime_type(path: Union[str, Path]) -> Optional[str]:
    """Extension lookup only. Returns None for unknown extensions."""
    if isinstance(path, str):
        path = Path(path)
    return MIME_TYPES.get(path.suffix.lower())


def get_mime_type(path: Union[str, Path], default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("style.css")
        'text/css'
        >>> get_mime_type("unknown.xyz")
        'application/octet-stream'
    """
    return lookup_mime_type(path) or default or DEFAULT_MIME_TYPE


def is_text_type(mime_type: str) -> bool:
    """Check if a MIME type is text-based (and so takes a charset)."""
    if mime_type.startswith("text/"):
        return True
    return mime_type in {
        "application/json",
        "application/xml",
        "application/javascript",
        "image/svg+xml",
    }


def with_charset(mime_type: str, charset: str = "utf-8") -> str:
    if is_text_type(mime_type) and "charset=" not in mime_type:
        return f"{mime_type}; charset={charset}"
    return mime_type


def get_content_type(path: Union[str, Path], charset: str = "utf-8") -> str:
    """Content-Type header value for a file, charset included for text."""
    return with_charset(get_mime_type(path), charset)


def sniff_content_type(data: bytes) -> str:
    """
    Guess a Content-Type from the first bytes of a body.

    Args:
        data: Leading body bytes. Only the first SNIFF_LENGTH are examined.

    Returns:
        A Content-Type header value.
    """
    head = data[:SNIFF_LENGTH]

    for prefix, mime_type in _SIGNATURES:
        if head.startswith(prefix):
            return mime_type

    lowered = head.lstrip(b" \t\r\n").lower()
    if lowered.startswith(_HTML_MARKERS):
        return "text/html; charset=utf-8"

    if b"\x00" in head:
        return DEFAULT_MIME_TYPE

    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the sniff boundary is still text
        if e.start < len(head) - 3:
            return DEFAULT_MIME_TYPE
    return "text/plain; charset=utf-8"
