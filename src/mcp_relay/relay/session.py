"""
Session du relay: une connexion client appairée à sa connexion distante.

Chaque session exécute deux tâches de copie (une par direction). La première
qui se termine (EOF, erreur ou annulation) déclenche la fermeture des deux
connexions, exactement une fois.
"""
import asyncio
import logging
import time
from typing import Optional, Dict, Any

from ..core.constants import DEFAULT_BUFFER_SIZE
from ..core.models import SessionState

logger = logging.getLogger(__name__)

# Délai max pour vider un buffer d'écriture à la fermeture avant abort()
CLOSE_TIMEOUT = 2.0

# Erreurs réseau locales à une session (reset, broken pipe, write-after-close)
SESSION_ERRORS = (ConnectionError, OSError)


class RelaySession:
    """
    Splice bidirectionnel entre un client et le serveur distant.

    Les deux connexions appartiennent exclusivement à la session.
    """

    def __init__(
        self,
        session_id: int,
        client_reader: asyncio.StreamReader,
        client_writer: asyncio.StreamWriter,
        remote_reader: asyncio.StreamReader,
        remote_writer: asyncio.StreamWriter,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.id = session_id
        self.client_reader = client_reader
        self.client_writer = client_writer
        self.remote_reader = remote_reader
        self.remote_writer = remote_writer
        self.buffer_size = buffer_size

        self.state = SessionState.ACTIVE
        self.peer = client_writer.get_extra_info("peername")
        self.opened_at = time.time()
        self.bytes_client_to_remote = 0
        self.bytes_remote_to_client = 0
        self.error: Optional[BaseException] = None

        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    async def _pump(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, direction: str) -> None:
        # Un cycle = une lecture puis une écriture complète, sans regroupement.
        while True:
            data = await reader.read(self.buffer_size)
            if not data:
                return
            writer.write(data)
            if direction == "client_to_remote":
                self.bytes_client_to_remote += len(data)
            else:
                self.bytes_remote_to_client += len(data)
            await writer.drain()

    async def run(self) -> Optional[BaseException]:
        """
        Relaie les octets dans les deux sens jusqu'à la fin de la session.

        Returns:
            L'erreur réseau ayant terminé la session, ou None (EOF / fermeture)
        """
        upstream = asyncio.create_task(
            self._pump(self.client_reader, self.remote_writer, "client_to_remote")
        )
        downstream = asyncio.create_task(
            self._pump(self.remote_reader, self.client_writer, "remote_to_client")
        )
        tasks = {upstream, downstream}

        try:
            done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is None:
                    continue
                if not isinstance(exc, SESSION_ERRORS):
                    raise exc
                if self.error is None:
                    self.error = exc
        finally:
            await self.close()
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Récupère les exceptions des tâches annulées ou en échec tardif
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, SESSION_ERRORS) and self.error is None:
                    self.error = result

        return self.error

    async def close(self) -> None:
        """
        Ferme les deux connexions. Idempotent: les appels suivants
        attendent simplement la fin de la première fermeture.
        """
        if self.state is not SessionState.ACTIVE:
            await self._closed.wait()
            return

        self.state = SessionState.CLOSING
        try:
            for writer in (self.client_writer, self.remote_writer):
                if not writer.is_closing():
                    writer.close()
            for writer in (self.client_writer, self.remote_writer):
                await self._wait_writer_closed(writer)
        finally:
            self.state = SessionState.CLOSED
            self._closed.set()

    @staticmethod
    async def _wait_writer_closed(writer: asyncio.StreamWriter) -> None:
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            # Pair bloqué: on abandonne le buffer restant
            writer.transport.abort()
        except SESSION_ERRORS:
            pass

    def to_dict(self) -> Dict[str, Any]:
        """Convertit la session en dictionnaire (API de statut)."""
        peer = self.peer
        if isinstance(peer, tuple):
            peer = f"{peer[0]}:{peer[1]}"
        return {
            "id": self.id,
            "peer": peer,
            "state": self.state.value,
            "opened_at": self.opened_at,
            "age_seconds": round(time.time() - self.opened_at, 3),
            "bytes_client_to_remote": self.bytes_client_to_remote,
            "bytes_remote_to_client": self.bytes_remote_to_client,
        }
