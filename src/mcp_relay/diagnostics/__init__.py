"""
Outils de diagnostic (connexion TCP / HTTP à un serveur MCP).
"""

from .probe import ProbeResult, probe_tcp, probe_http, build_jsonrpc_request

__all__ = [
    "ProbeResult",
    "probe_tcp",
    "probe_http",
    "build_jsonrpc_request",
]
