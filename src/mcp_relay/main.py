"""
MCP Relay - Application FastAPI de statut.
Expose en lecture seule l'état du relay TCP et du superviseur.
"""
import asyncio
import contextlib
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.router import api_router
from .core.exceptions import RelayBindError

logger = logging.getLogger(__name__)


def create_app(relay=None, supervisor=None) -> FastAPI:
    """
    Factory pour créer l'application FastAPI.

    Args:
        relay: Instance TcpRelay à exposer (optionnel)
        supervisor: Instance Supervisor à exposer (optionnel)

    Returns:
        Instance configurée de FastAPI
    """
    app = FastAPI(
        title="MCP Relay",
        description="Statut du relay TCP et du superviseur de serveur MCP",
        version=__version__,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.state.relay = relay
    app.state.supervisor = supervisor

    # Inclusion des routes API
    app.include_router(api_router)

    return app


class EmbeddedServer(uvicorn.Server):
    """Serveur uvicorn partageant la boucle du relay/superviseur.

    Les signaux restent gérés par le relay ou le superviseur.
    """

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class StatusServer:
    """Lance/arrête l'API de statut dans la boucle asyncio courante."""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.host = host
        self.port = port
        self.server = EmbeddedServer(
            uvicorn.Config(app, host=host, port=port, log_level="warning", lifespan="off")
        )
        self._task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    async def start(self) -> None:
        """
        Ouvre le port puis démarre uvicorn.

        Raises:
            RelayBindError: Port de l'API déjà utilisé
        """
        # Bind explicite: uvicorn ferait sys.exit(1) en cas d'échec
        try:
            self._socket = socket.create_server((self.host, self.port))
        except OSError as e:
            raise RelayBindError(
                f"API de statut: impossible d'écouter sur {self.host}:{self.port}: {e}",
                host=self.host,
                port=self.port
            ) from e

        self.port = self._socket.getsockname()[1]
        self._task = asyncio.create_task(self.server.serve(sockets=[self._socket]))
        logger.info(f"📊 API de statut sur http://{self.host}:{self.port}/health")

    async def stop(self) -> None:
        if self._task is None:
            return
        self.server.should_exit = True
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
