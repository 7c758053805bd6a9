"""
Cœur métier de MCP Relay.
Modules indépendants sans dépendances externes au package.
"""

from .exceptions import (
    McpRelayError,
    ConfigurationError,
    RelayBindError,
    RemoteConnectError,
    SpawnError,
    ProbeError,
)
from .constants import (
    DEFAULT_LOCAL_HOST,
    DEFAULT_LOCAL_PORT,
    DEFAULT_REMOTE_HOST,
    DEFAULT_REMOTE_PORT,
    DEFAULT_MAX_RESTARTS,
    DEFAULT_RESTART_DELAY,
    DEFAULT_KILL_TIMEOUT,
    EXIT_OK,
    EXIT_GIVEN_UP,
)
from .models import (
    SessionState,
    SupervisorState,
    SignalKind,
    ExitStatus,
)

__all__ = [
    # Exceptions
    "McpRelayError",
    "ConfigurationError",
    "RelayBindError",
    "RemoteConnectError",
    "SpawnError",
    "ProbeError",
    # Constantes
    "DEFAULT_LOCAL_HOST",
    "DEFAULT_LOCAL_PORT",
    "DEFAULT_REMOTE_HOST",
    "DEFAULT_REMOTE_PORT",
    "DEFAULT_MAX_RESTARTS",
    "DEFAULT_RESTART_DELAY",
    "DEFAULT_KILL_TIMEOUT",
    "EXIT_OK",
    "EXIT_GIVEN_UP",
    # Modèles
    "SessionState",
    "SupervisorState",
    "SignalKind",
    "ExitStatus",
]
