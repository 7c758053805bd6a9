"""
Supervision du processus serveur MCP (redémarrage borné, relais des signaux).
"""

from .supervisor import Supervisor
from .process import ProcessControl, ProcessHandle, AsyncioProcessControl
from .output import OutputSink

__all__ = [
    "Supervisor",
    "ProcessControl",
    "ProcessHandle",
    "AsyncioProcessControl",
    "OutputSink",
]
