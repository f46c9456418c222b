"""
=============================================================================
XEND - A Local File Server
=============================================================================

Serves a directory over HTTP, with three things added on top of plain
file serving:

    - an access log line for every request
    - gzip compression for clients that accept it
    - 404 for dotfiles and dot-directories (.git, .env, ...)

    $ xend -host 0.0.0.0 -port 9000 -dir ./public

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    xend/
    ├── __main__.py          CLI entry point
    ├── config.py            ServerConfig
    ├── server.py            HTTPServer: lifecycle, keep-alive loop
    ├── core/
    │   ├── socket_server.py listening socket, accept loop
    │   ├── connection.py    client connection I/O
    │   └── thread_pool.py   worker threads
    ├── http/
    │   ├── request.py       request parsing
    │   ├── writer.py        streaming response writers
    │   ├── response.py      status line and header serialization
    │   ├── status_codes.py
    │   └── mime_types.py
    ├── middleware/
    │   ├── base.py          Middleware, MiddlewarePipeline
    │   ├── logging.py       access log
    │   ├── security.py      hidden path rejection
    │   └── compression.py   gzip
    └── handlers/
        └── static.py        FileServer, strip_prefix

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, ServerState
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "ServerState", "__version__"]
