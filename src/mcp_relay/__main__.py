"""
Point d'entrée pour `python -m mcp_relay` (et la commande `mcp-relay`).

    mcp-relay relay --local-port 3001 --remote-host 192.168.40.197 --remote-port 3000
    mcp-relay supervise --max-restarts 5 --restart-delay 5 -- node mcp-tcp-fixed.js
    mcp-relay probe tcp 127.0.0.1 3001
    mcp-relay probe http http://192.168.40.197:3000
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple

from . import __version__
from .config.loader import reload_config
from .config.settings import Settings
from .core.constants import DEFAULT_PROBE_TIMEOUT, DEFAULT_PROBE_METHOD
from .core.exceptions import ConfigurationError, ProbeError

logger = logging.getLogger("mcp_relay")


def _parse_env_pair(value: str) -> Tuple[str, str]:
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"format attendu KEY=VALUE: {value!r}")
    return key, val


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-relay",
        description="Relay TCP et superviseur de processus pour serveurs MCP"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Niveau de log (défaut: INFO)")
    subparsers = parser.add_subparsers(dest="command_name")

    # relay
    relay_parser = subparsers.add_parser("relay", help="Relaie un port local vers le serveur MCP distant")
    relay_parser.add_argument("--config", help="Chemin vers config.toml")
    relay_parser.add_argument("--local-host", help="Adresse d'écoute (défaut: 127.0.0.1)")
    relay_parser.add_argument("--local-port", type=int, help="Port local (défaut: 3001)")
    relay_parser.add_argument("--remote-host", help="Hôte du serveur MCP distant")
    relay_parser.add_argument("--remote-port", type=int, help="Port du serveur MCP distant (défaut: 3000)")
    relay_parser.add_argument("--connect-timeout", type=float, help="Timeout de connexion distante (s)")
    relay_parser.add_argument("--status-port", type=int, help="Active l'API de statut sur ce port")
    relay_parser.add_argument("--status-host", help="Adresse de l'API de statut")

    # supervise
    sup_parser = subparsers.add_parser("supervise", help="Lance et relance le serveur MCP")
    sup_parser.add_argument("--config", help="Chemin vers config.toml")
    sup_parser.add_argument("--max-restarts", type=int, help="Budget de redémarrages (défaut: 5)")
    sup_parser.add_argument("--restart-delay", type=float, help="Délai avant relancement (s, défaut: 5)")
    sup_parser.add_argument("--kill-timeout", type=float, help="Délai avant SIGKILL (s, défaut: 5)")
    sup_parser.add_argument("--port", help="Port transmis à l'enfant via MCP_PORT")
    sup_parser.add_argument("--env", action="append", type=_parse_env_pair, default=[],
                            metavar="KEY=VALUE", help="Variable d'environnement de l'enfant (répétable)")
    sup_parser.add_argument("--cwd", help="Répertoire de travail de l'enfant")
    sup_parser.add_argument("--pipe", action="store_true",
                            help="Capture stdout/stderr de l'enfant au lieu de les hériter")
    sup_parser.add_argument("--output-log", help="Fichier où ajouter la sortie capturée (implique --pipe)")
    sup_parser.add_argument("--status-port", type=int, help="Active l'API de statut sur ce port")
    sup_parser.add_argument("--status-host", help="Adresse de l'API de statut")
    sup_parser.add_argument("child", nargs=argparse.REMAINDER,
                            help="Commande du serveur (après --)")

    # probe
    probe_parser = subparsers.add_parser("probe", help="Teste la connexion à un serveur MCP")
    probe_sub = probe_parser.add_subparsers(dest="probe_kind", required=True)
    tcp_parser = probe_sub.add_parser("tcp", help="Requête JSON-RPC sur TCP (une ligne)")
    tcp_parser.add_argument("host")
    tcp_parser.add_argument("port", type=int)
    tcp_parser.add_argument("--method", default=DEFAULT_PROBE_METHOD,
                            help=f"Méthode JSON-RPC (défaut: {DEFAULT_PROBE_METHOD})")
    tcp_parser.add_argument("--timeout", type=float, default=DEFAULT_PROBE_TIMEOUT)
    http_parser = probe_sub.add_parser("http", help="GET /health puis POST /mcp")
    http_parser.add_argument("url")
    http_parser.add_argument("--timeout", type=float, default=DEFAULT_PROBE_TIMEOUT)

    return parser


def _apply_status_args(settings: Settings, args: argparse.Namespace) -> None:
    if args.status_port is not None:
        settings.status.enabled = True
        settings.status.port = args.status_port
    if args.status_host:
        settings.status.host = args.status_host


def build_settings(args: argparse.Namespace) -> Settings:
    """
    Construit la configuration: config.toml + env, puis flags CLI.

    Raises:
        ConfigurationError: Fichier absent/invalide ou valeur hors limites
    """
    settings = Settings.from_config(reload_config(args.config))

    if args.command_name == "relay":
        relay = settings.relay
        for attr in ("local_host", "local_port", "remote_host", "remote_port", "connect_timeout"):
            value = getattr(args, attr)
            if value is not None:
                setattr(relay, attr, value)
        relay.validate()

    elif args.command_name == "supervise":
        sup = settings.supervisor
        child = list(args.child)
        if child and child[0] == "--":
            child = child[1:]
        if child:
            sup.command, sup.args = child[0], child[1:]
        for attr in ("max_restarts", "restart_delay", "kill_timeout", "cwd"):
            value = getattr(args, attr)
            if value is not None:
                setattr(sup, attr, value)
        if args.port is not None:
            sup.child_port = str(args.port)
        sup.env.update(dict(args.env))
        if args.pipe or args.output_log:
            sup.stdio = "pipe"
        if args.output_log:
            sup.output_log = args.output_log
        sup.validate()

    _apply_status_args(settings, args)
    settings.status.validate()
    return settings


async def _run_probe(args: argparse.Namespace) -> int:
    from .diagnostics.probe import probe_tcp, probe_http

    try:
        if args.probe_kind == "tcp":
            print(f"🧪 Test de connexion TCP vers {args.host}:{args.port}...", file=sys.stderr)
            results = [await probe_tcp(args.host, args.port, method=args.method, timeout=args.timeout)]
        else:
            print(f"🧪 Test du serveur MCP HTTP {args.url}...", file=sys.stderr)
            results = await probe_http(args.url, timeout=args.timeout)
    except ProbeError as e:
        print(f"❌ {e.message} ({e.details.get('target')})", file=sys.stderr)
        return 1

    for result in results:
        print(f"✅ {result.target} ({result.latency_ms:.1f} ms)", file=sys.stderr)
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Fonction principale."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command_name is None:
        parser.print_help()
        return 2

    if args.command_name == "probe":
        return asyncio.run(_run_probe(args))

    try:
        settings = build_settings(args)
    except ConfigurationError as e:
        logger.error(f"❌ Configuration invalide: {e}")
        return 1

    from .runner import run_relay, run_supervisor

    if args.command_name == "relay":
        return asyncio.run(run_relay(settings))
    return asyncio.run(run_supervisor(settings))


if __name__ == "__main__":
    sys.exit(main())
