"""
=============================================================================
CORE NETWORKING
=============================================================================

    SocketServer   listening socket + accept loop
    Connection     one client socket: buffered reads, sends, close
    ThreadPool     worker threads that run one connection each

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
