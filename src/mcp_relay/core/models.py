"""
Dataclasses et énumérations métier pour MCP Relay.
"""
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any


class SessionState(str, Enum):
    """Cycle de vie d'une session du relay."""
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class SupervisorState(str, Enum):
    """États de la machine à états du superviseur."""
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    RESTARTING = "restarting"
    GIVEN_UP = "given_up"
    SHUTTING_DOWN = "shutting_down"

    @property
    def is_terminal(self) -> bool:
        return self in (SupervisorState.GIVEN_UP, SupervisorState.SHUTTING_DOWN)


class SignalKind(str, Enum):
    """Requêtes d'arrêt transmises au processus enfant."""
    TERMINATE = "terminate"
    KILL = "kill"


@dataclass(frozen=True)
class ExitStatus:
    """Statut de sortie d'un processus enfant.

    `code` est le code de retour (None si tué par un signal),
    `signal` le numéro du signal ayant terminé le processus.
    `spawn_failed` distingue un lancement impossible d'une sortie normale.
    """
    code: Optional[int] = None
    signal: Optional[int] = None
    spawn_failed: bool = False

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitStatus":
        """Convertit un returncode asyncio (négatif = signal) en ExitStatus."""
        if returncode < 0:
            return cls(code=None, signal=-returncode)
        return cls(code=returncode, signal=None)

    @property
    def signal_name(self) -> Optional[str]:
        if self.signal is None:
            return None
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return str(self.signal)

    def to_dict(self) -> Dict[str, Any]:
        """Convertit le statut en dictionnaire."""
        return {
            "code": self.code,
            "signal": self.signal_name,
            "spawn_failed": self.spawn_failed,
        }
