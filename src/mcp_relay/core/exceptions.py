"""
Exceptions personnalisées pour MCP Relay.
"""


class McpRelayError(Exception):
    """Exception de base pour toutes les erreurs du relay et du superviseur."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(McpRelayError):
    """Erreur de configuration (fichier manquant, valeur invalide)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


class RelayBindError(McpRelayError):
    """Le port local du relay ne peut pas être ouvert (erreur fatale au démarrage)."""

    def __init__(self, message: str, host: str = None, port: int = None):
        super().__init__(
            message=message,
            code="bind_error",
            details={"host": host, "port": port}
        )


class RemoteConnectError(McpRelayError):
    """Connexion sortante vers le serveur distant impossible (erreur de session)."""

    def __init__(self, message: str, host: str = None, port: int = None):
        super().__init__(
            message=message,
            code="remote_connect_error",
            details={"host": host, "port": port}
        )


class SpawnError(McpRelayError):
    """Le processus enfant n'a pas pu être lancé."""

    def __init__(self, message: str, command: str = None):
        super().__init__(
            message=message,
            code="spawn_error",
            details={"command": command} if command else {}
        )


class ProbeError(McpRelayError):
    """Échec d'une sonde de diagnostic (connexion, timeout, HTTP)."""

    def __init__(self, message: str, target: str = None, error_type: str = None):
        super().__init__(
            message=message,
            code="probe_error",
            details={
                "target": target,
                "error_type": error_type,
            }
        )
        self.error_type = error_type
