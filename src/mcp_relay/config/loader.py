"""src.mcp_relay.config.loader

Chargement de la configuration TOML.

Note d'architecture:
- Le package `config/` est consommé par le relay, le superviseur et la CLI.
- Il ne dépend que de `core/` afin d'éviter les imports circulaires.

Priorité des sources: flags CLI > variables d'environnement > config.toml > défauts.
Les flags CLI sont appliqués par `__main__`, ce module gère les trois autres.
"""
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional, Mapping

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
    DEFAULT_STATUS_HOST,
    DEFAULT_STATUS_PORT,
)
from ..core.exceptions import ConfigurationError

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None

_ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Args:
        obj: Valeur à traiter (str, dict, list)

    Returns:
        Valeur avec variables d'environnement expansées
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return _ENV_VAR_PATTERN.sub(replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache
    _config_cache = None


def _default_config_path() -> Path:
    # Structure: project/src/mcp_relay/config/loader.py
    # Remonte de 4 niveaux: loader.py -> config -> mcp_relay -> src -> project
    return Path(__file__).resolve().parents[3] / "config.toml"


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"Fichier de configuration invalide ({path}): {e}",
            config_key="config_path"
        )


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Sans chemin explicite, cherche config.toml à la racine du projet et
    retourne une configuration vide s'il n'existe pas.

    Args:
        config_path: Chemin vers le fichier config (optionnel)

    Returns:
        Dictionnaire de configuration

    Raises:
        ConfigurationError: Si le fichier explicite n'existe pas ou est invalide
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    if config_path is None:
        path = _default_config_path()
        if not path.exists():
            _config_cache = {}
            return _config_cache
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(
                message=f"Fichier de configuration non trouvé: {config_path}",
                config_key="config_path"
            )

    _config_cache = _expand_env_vars(_read_toml(path))
    return _config_cache


def reload_config(config_path: str = None) -> Dict[str, Any]:
    """
    Recharge la configuration depuis le fichier.

    Returns:
        Nouvelle configuration chargée
    """
    _clear_config_cache()
    return load_config(config_path)


def get_config() -> Dict[str, Any]:
    """
    Retourne la configuration en cache.

    Returns:
        Configuration actuelle
    """
    if _config_cache is None:
        return load_config()
    return _config_cache


def _env_int(environ: Mapping[str, str], name: str, default: Any) -> Any:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(
            message=f"Variable d'environnement {name} invalide (entier attendu): {raw!r}",
            config_key=name
        )


def _env_float(environ: Mapping[str, str], name: str, default: Any) -> Any:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        raise ConfigurationError(
            message=f"Variable d'environnement {name} invalide (nombre attendu): {raw!r}",
            config_key=name
        )


def get_relay_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """
    Extrait la configuration du relay (section [relay] + overrides env).

    Args:
        config: Configuration chargée
        environ: Environnement (défaut: os.environ)

    Returns:
        Configuration du relay
    """
    environ = os.environ if environ is None else environ
    relay_config = config.get("relay", {})

    return {
        "local_host": relay_config.get("local_host", DEFAULT_LOCAL_HOST),
        "local_port": _env_int(environ, "MCP_RELAY_LOCAL_PORT",
                               relay_config.get("local_port", DEFAULT_LOCAL_PORT)),
        "remote_host": environ.get("MCP_RELAY_REMOTE_HOST")
        or relay_config.get("remote_host", DEFAULT_REMOTE_HOST),
        "remote_port": _env_int(environ, "MCP_RELAY_REMOTE_PORT",
                                relay_config.get("remote_port", DEFAULT_REMOTE_PORT)),
        "connect_timeout": relay_config.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT),
        "buffer_size": relay_config.get("buffer_size", DEFAULT_BUFFER_SIZE),
    }


def get_supervisor_config(config: Dict[str, Any], environ: Mapping[str, str] = None) -> Dict[str, Any]:
    """
    Extrait la configuration du superviseur (section [supervisor] + overrides env).

    Le port transmis à l'enfant reprend MCP_PORT s'il est déjà défini dans
    l'environnement du superviseur.

    Args:
        config: Configuration chargée
        environ: Environnement (défaut: os.environ)

    Returns:
        Configuration du superviseur
    """
    environ = os.environ if environ is None else environ
    supervisor_config = config.get("supervisor", {})

    child_port = environ.get(CHILD_PORT_ENV) or supervisor_config.get("child_port", DEFAULT_CHILD_PORT)

    return {
        "command": supervisor_config.get("command", DEFAULT_CHILD_COMMAND),
        "args": list(supervisor_config.get("args", DEFAULT_CHILD_ARGS)),
        "cwd": supervisor_config.get("cwd"),
        "env": {str(k): str(v) for k, v in supervisor_config.get("env", {}).items()},
        "child_port": str(child_port),
        "max_restarts": _env_int(environ, "MCP_SUPERVISOR_MAX_RESTARTS",
                                 supervisor_config.get("max_restarts", DEFAULT_MAX_RESTARTS)),
        "restart_delay": _env_float(environ, "MCP_SUPERVISOR_RESTART_DELAY",
                                    supervisor_config.get("restart_delay", DEFAULT_RESTART_DELAY)),
        "kill_timeout": supervisor_config.get("kill_timeout", DEFAULT_KILL_TIMEOUT),
        "stdio": supervisor_config.get("stdio", "inherit"),
        "output_log": supervisor_config.get("output_log"),
    }


def get_status_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extrait la configuration de l'API de statut.

    Args:
        config: Configuration chargée

    Returns:
        Configuration de l'API de statut
    """
    status_config = config.get("status", {})
    return {
        "enabled": bool(status_config.get("enabled", False)),
        "host": status_config.get("host", DEFAULT_STATUS_HOST),
        "port": status_config.get("port", DEFAULT_STATUS_PORT),
    }
