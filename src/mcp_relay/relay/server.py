"""
Relay TCP: écoute sur un port local et relaie chaque connexion vers un
serveur MCP distant fixe (host:port), octet par octet.

Le relay n'interprète jamais le flux JSON-RPC: c'est un tuyau transparent.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional, Set, Tuple

from ..config.settings import RelayConfig
from ..core.exceptions import RelayBindError, RemoteConnectError
from .session import RelaySession

logger = logging.getLogger(__name__)


@dataclass
class RelayStats:
    """Compteurs cumulés du relay."""
    accepted: int = 0
    opened: int = 0
    closed: int = 0
    failed_connects: int = 0
    errors: int = 0
    bytes_client_to_remote: int = 0
    bytes_remote_to_client: int = 0


class TcpRelay:
    """
    Proxy TCP multi-connexions vers une cible distante unique.

    Usage:
        relay = TcpRelay(RelayConfig(local_port=3001, remote_host="10.0.0.5"))
        await relay.start()
        await relay.serve_forever()
    """

    def __init__(self, config: RelayConfig):
        self.config = config
        self.stats = RelayStats()
        self.sessions: Dict[int, RelaySession] = {}
        self._server: Optional[asyncio.AbstractServer] = None
        self._ids = itertools.count(1)
        self._handlers: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Adresse effective d'écoute (utile avec local_port=0)."""
        if self._server is None or not self._server.sockets:
            return None
        sockname = self._server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    async def start(self) -> None:
        """
        Ouvre le port local.

        Raises:
            RelayBindError: Port déjà utilisé ou adresse invalide (fatal)
        """
        host, port = self.config.local_host, self.config.local_port
        try:
            self._server = await asyncio.start_server(self._handle_client, host, port)
        except OSError as e:
            raise RelayBindError(
                f"Impossible d'écouter sur {host}:{port}: {e}",
                host=host,
                port=port
            ) from e

        bound_host, bound_port = self.address
        logger.info(f"🎯 Relay TCP en écoute sur {bound_host}:{bound_port}")
        logger.info(
            f"📍 Redirection: {bound_host}:{bound_port} → "
            f"{self.config.remote_host}:{self.config.remote_port}"
        )

    async def serve_forever(self) -> None:
        """Accepte des connexions jusqu'à stop()."""
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Ferme le port d'écoute puis toutes les sessions en cours."""
        if self._server is None:
            return
        self._server.close()

        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)

        await self._server.wait_closed()
        self._server = None
        logger.info("🛑 Relay TCP arrêté")

    async def _open_remote(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        host, port = self.config.remote_host, self.config.remote_port
        try:
            return await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.config.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RemoteConnectError(
                f"Timeout ({self.config.connect_timeout}s) vers {host}:{port}",
                host=host,
                port=port
            ) from e
        except OSError as e:
            raise RemoteConnectError(
                f"Connexion refusée par {host}:{port}: {e}",
                host=host,
                port=port
            ) from e

    async def _handle_client(self, client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter) -> None:
        # asyncio.start_server exécute ce handler dans sa propre tâche:
        # une session lente ne bloque jamais l'acceptation.
        task = asyncio.current_task()
        self._handlers.add(task)
        session_id = next(self._ids)
        self.stats.accepted += 1
        peer = client_writer.get_extra_info("peername")
        logger.info(f"🔗 Client #{session_id} connecté ({_format_peer(peer)})")

        try:
            try:
                remote_reader, remote_writer = await self._open_remote()
            except RemoteConnectError as e:
                self.stats.failed_connects += 1
                logger.error(f"❌ Client #{session_id}: erreur connexion serveur distant: {e.message}")
                client_writer.close()
                try:
                    await client_writer.wait_closed()
                except (ConnectionError, OSError):
                    pass
                return

            session = RelaySession(
                session_id,
                client_reader,
                client_writer,
                remote_reader,
                remote_writer,
                buffer_size=self.config.buffer_size,
            )
            self.sessions[session_id] = session
            self.stats.opened += 1
            logger.info(f"✅ Session #{session_id} ouverte vers le serveur MCP distant")

            try:
                error = await session.run()
            finally:
                self.sessions.pop(session_id, None)
                self.stats.closed += 1
                self.stats.bytes_client_to_remote += session.bytes_client_to_remote
                self.stats.bytes_remote_to_client += session.bytes_remote_to_client

            if error is not None:
                self.stats.errors += 1
                logger.warning(f"❌ Session #{session_id}: {type(error).__name__}: {error}")
            logger.info(
                f"🔌 Session #{session_id} fermée "
                f"(client→serveur: {session.bytes_client_to_remote} o, "
                f"serveur→client: {session.bytes_remote_to_client} o)"
            )
        except asyncio.CancelledError:
            # Arrêt du relay. Une session ouverte s'est déjà fermée dans son
            # finally, reste le client annulé pendant la connexion distante.
            if not client_writer.is_closing():
                client_writer.close()
            raise
        except Exception as e:
            # Aucune erreur de session ne doit remonter jusqu'au listener
            self.stats.errors += 1
            logger.exception(f"❌ Session #{session_id}: erreur inattendue: {e}")
            if not client_writer.is_closing():
                client_writer.close()
        finally:
            self._handlers.discard(task)

    def snapshot(self) -> Dict[str, Any]:
        """État courant du relay pour l'API de statut."""
        address = self.address
        return {
            "running": self.running,
            "listen": f"{address[0]}:{address[1]}" if address else None,
            "remote": f"{self.config.remote_host}:{self.config.remote_port}",
            "active_sessions": len(self.sessions),
            "stats": asdict(self.stats),
        }

    def list_sessions(self) -> list:
        return [session.to_dict() for session in self.sessions.values()]


def _format_peer(peer: Any) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer)
