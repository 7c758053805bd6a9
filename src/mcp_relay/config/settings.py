"""
Dataclasses pour la configuration.
"""
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Mapping

from ..core.constants import (
    DEFAULT_LOCAL_HOST,
    DEFAULT_LOCAL_PORT,
    DEFAULT_REMOTE_HOST,
    DEFAULT_REMOTE_PORT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_MAX_RESTARTS,
    DEFAULT_RESTART_DELAY,
    DEFAULT_KILL_TIMEOUT,
    DEFAULT_CHILD_COMMAND,
    DEFAULT_CHILD_ARGS,
    DEFAULT_CHILD_PORT,
    CHILD_PORT_ENV,
    STDIO_MODES,
    DEFAULT_STATUS_HOST,
    DEFAULT_STATUS_PORT,
)
from ..core.exceptions import ConfigurationError


def _as_int(value: Any, key: str) -> int:
    """
    Convertit une valeur de config en entier.

    Les valeurs issues de ${VAR} ou entre guillemets dans le TOML sont des
    chaînes: "3001" est accepté, "abc", 2.5 et true ne le sont pas.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ConfigurationError(f"Entier attendu pour {key}: {value!r}", config_key=key)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"Entier attendu pour {key}: {value!r}", config_key=key)


def _as_float(value: Any, key: str) -> float:
    """Convertit une valeur de config en nombre (secondes)."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Nombre attendu pour {key}: {value!r}", config_key=key)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"Nombre attendu pour {key}: {value!r}", config_key=key)


def _check_port(value: Any, key: str, allow_zero: bool = False) -> None:
    low = 0 if allow_zero else 1
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= 65535:
        raise ConfigurationError(f"Port invalide pour {key}: {value!r}", config_key=key)


@dataclass
class RelayConfig:
    """Configuration du relay TCP."""
    local_host: str = DEFAULT_LOCAL_HOST
    local_port: int = DEFAULT_LOCAL_PORT
    remote_host: str = DEFAULT_REMOTE_HOST
    remote_port: int = DEFAULT_REMOTE_PORT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    buffer_size: int = DEFAULT_BUFFER_SIZE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelayConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            local_host=data.get("local_host", DEFAULT_LOCAL_HOST),
            local_port=_as_int(data.get("local_port", DEFAULT_LOCAL_PORT), "relay.local_port"),
            remote_host=data.get("remote_host", DEFAULT_REMOTE_HOST),
            remote_port=_as_int(data.get("remote_port", DEFAULT_REMOTE_PORT), "relay.remote_port"),
            connect_timeout=_as_float(data.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT),
                                      "relay.connect_timeout"),
            buffer_size=_as_int(data.get("buffer_size", DEFAULT_BUFFER_SIZE), "relay.buffer_size")
        )

    def validate(self) -> "RelayConfig":
        """Vérifie les valeurs; lève ConfigurationError sinon."""
        # Port local 0 = port éphémère choisi par l'OS (tests)
        _check_port(self.local_port, "relay.local_port", allow_zero=True)
        _check_port(self.remote_port, "relay.remote_port")
        if not self.remote_host:
            raise ConfigurationError("Hôte distant manquant", config_key="relay.remote_host")
        if _as_float(self.connect_timeout, "relay.connect_timeout") <= 0:
            raise ConfigurationError(
                f"connect_timeout doit être > 0: {self.connect_timeout}",
                config_key="relay.connect_timeout"
            )
        if _as_int(self.buffer_size, "relay.buffer_size") <= 0:
            raise ConfigurationError(
                f"buffer_size doit être > 0: {self.buffer_size}",
                config_key="relay.buffer_size"
            )
        return self


@dataclass
class SupervisorConfig:
    """Configuration du superviseur de processus."""
    command: str = DEFAULT_CHILD_COMMAND
    args: List[str] = field(default_factory=lambda: list(DEFAULT_CHILD_ARGS))
    cwd: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    child_port: str = DEFAULT_CHILD_PORT
    max_restarts: int = DEFAULT_MAX_RESTARTS
    restart_delay: float = DEFAULT_RESTART_DELAY
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    stdio: str = "inherit"
    output_log: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SupervisorConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            command=data.get("command", DEFAULT_CHILD_COMMAND),
            args=list(data.get("args", DEFAULT_CHILD_ARGS)),
            cwd=data.get("cwd"),
            env=dict(data.get("env", {})),
            child_port=str(data.get("child_port", DEFAULT_CHILD_PORT)),
            max_restarts=_as_int(data.get("max_restarts", DEFAULT_MAX_RESTARTS), "supervisor.max_restarts"),
            restart_delay=_as_float(data.get("restart_delay", DEFAULT_RESTART_DELAY),
                                    "supervisor.restart_delay"),
            kill_timeout=_as_float(data.get("kill_timeout", DEFAULT_KILL_TIMEOUT), "supervisor.kill_timeout"),
            stdio=data.get("stdio", "inherit"),
            output_log=data.get("output_log")
        )

    @property
    def argv(self) -> List[str]:
        """Ligne de commande complète de l'enfant."""
        return [self.command, *self.args]

    def child_env(self, base_env: Mapping[str, str]) -> Dict[str, str]:
        """
        Construit l'environnement de l'enfant.

        Args:
            base_env: Environnement hérité (en général os.environ)

        Returns:
            base_env + overrides + MCP_PORT
        """
        env = dict(base_env)
        env.update(self.env)
        env[CHILD_PORT_ENV] = str(self.child_port)
        return env

    def validate(self) -> "SupervisorConfig":
        """Vérifie les valeurs; lève ConfigurationError sinon."""
        if not self.command:
            raise ConfigurationError("Commande du processus enfant manquante", config_key="supervisor.command")
        if not isinstance(self.max_restarts, int) or isinstance(self.max_restarts, bool) or self.max_restarts < 0:
            raise ConfigurationError(
                f"max_restarts doit être un entier >= 0: {self.max_restarts!r}",
                config_key="supervisor.max_restarts"
            )
        if _as_float(self.restart_delay, "supervisor.restart_delay") < 0:
            raise ConfigurationError(
                f"restart_delay doit être >= 0: {self.restart_delay}",
                config_key="supervisor.restart_delay"
            )
        if _as_float(self.kill_timeout, "supervisor.kill_timeout") <= 0:
            raise ConfigurationError(
                f"kill_timeout doit être > 0: {self.kill_timeout}",
                config_key="supervisor.kill_timeout"
            )
        if self.stdio not in STDIO_MODES:
            raise ConfigurationError(
                f"Mode stdio inconnu: {self.stdio!r} (attendu: {', '.join(STDIO_MODES)})",
                config_key="supervisor.stdio"
            )
        if self.output_log and self.stdio != "pipe":
            raise ConfigurationError(
                "output_log nécessite stdio = \"pipe\"",
                config_key="supervisor.output_log"
            )
        return self


@dataclass
class StatusConfig:
    """Configuration de l'API de statut (FastAPI)."""
    enabled: bool = False
    host: str = DEFAULT_STATUS_HOST
    port: int = DEFAULT_STATUS_PORT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            enabled=data.get("enabled", False),
            host=data.get("host", DEFAULT_STATUS_HOST),
            port=_as_int(data.get("port", DEFAULT_STATUS_PORT), "status.port")
        )

    def validate(self) -> "StatusConfig":
        if self.enabled:
            _check_port(self.port, "status.port", allow_zero=True)
        return self


@dataclass
class Settings:
    """Configuration globale de l'application."""
    relay: RelayConfig = field(default_factory=RelayConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    status: StatusConfig = field(default_factory=StatusConfig)

    @classmethod
    def from_config(cls, config: Dict[str, Any], environ: Mapping[str, str] = None) -> "Settings":
        """Crée une instance depuis la configuration chargée."""
        from .loader import get_relay_config, get_supervisor_config, get_status_config

        return cls(
            relay=RelayConfig.from_dict(get_relay_config(config, environ)),
            supervisor=SupervisorConfig.from_dict(get_supervisor_config(config, environ)),
            status=StatusConfig.from_dict(get_status_config(config))
        )
