"""
Relay TCP transparent vers un serveur MCP distant.
"""

from .server import TcpRelay, RelayStats
from .session import RelaySession

__all__ = [
    "TcpRelay",
    "RelayStats",
    "RelaySession",
]
