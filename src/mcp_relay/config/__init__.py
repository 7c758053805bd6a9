"""
Configuration de MCP Relay.
"""

from .loader import load_config, reload_config, get_config
from .settings import Settings, RelayConfig, SupervisorConfig, StatusConfig

__all__ = [
    "load_config",
    "reload_config",
    "get_config",
    "Settings",
    "RelayConfig",
    "SupervisorConfig",
    "StatusConfig",
]
