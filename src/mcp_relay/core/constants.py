"""
Constantes globales pour MCP Relay.
"""

# ============================================================================
# RELAY TCP
# ============================================================================
DEFAULT_LOCAL_HOST = "127.0.0.1"
DEFAULT_LOCAL_PORT = 3001
DEFAULT_REMOTE_HOST = "192.168.40.197"
DEFAULT_REMOTE_PORT = 3000
DEFAULT_CONNECT_TIMEOUT = 10.0  # secondes
DEFAULT_BUFFER_SIZE = 64 * 1024  # taille max d'une lecture (un cycle read/write)

# ============================================================================
# SUPERVISEUR
# ============================================================================
DEFAULT_MAX_RESTARTS = 5  # soit 6 lancements au total
DEFAULT_RESTART_DELAY = 5.0  # secondes entre une sortie et le relancement
DEFAULT_KILL_TIMEOUT = 5.0  # délai avant escalade SIGTERM -> SIGKILL
DEFAULT_CHILD_COMMAND = "node"
DEFAULT_CHILD_ARGS = ["mcp-tcp-fixed.js"]
CHILD_PORT_ENV = "MCP_PORT"
DEFAULT_CHILD_PORT = "3000"
STDIO_MODES = ("inherit", "pipe")
OUTPUT_TAIL_LINES = 200  # lignes conservées en mémoire en mode pipe

# Codes de sortie du superviseur
EXIT_OK = 0
EXIT_GIVEN_UP = 1

# ============================================================================
# DIAGNOSTIC
# ============================================================================
DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_PROBE_METHOD = "tools/list"
PROBE_STREAM_LIMIT = 8 * 1024 * 1024  # réponses JSON-RPC volumineuses sur une ligne

# ============================================================================
# API DE STATUT
# ============================================================================
DEFAULT_STATUS_HOST = "127.0.0.1"
DEFAULT_STATUS_PORT = 8765
