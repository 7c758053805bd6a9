"""
Orchestration des commandes longues (relay, superviseur) dans une boucle asyncio:
signaux d'arrêt, API de statut optionnelle, codes de sortie.
"""
import asyncio
import logging
from typing import Optional

from .config.settings import Settings
from .core.constants import EXIT_OK
from .core.exceptions import RelayBindError
from .main import create_app, StatusServer
from .relay.server import TcpRelay
from .supervisor.supervisor import Supervisor, SHUTDOWN_SIGNALS

logger = logging.getLogger(__name__)

EXIT_STARTUP_FAILURE = 1


async def _start_status(settings: Settings, **components) -> Optional[StatusServer]:
    if not settings.status.enabled:
        return None
    status = StatusServer(create_app(**components), settings.status.host, settings.status.port)
    await status.start()
    return status


async def run_relay(settings: Settings) -> int:
    """
    Lance le relay jusqu'à SIGINT/SIGTERM.

    Returns:
        0 après un arrêt par signal, 1 si un port ne peut pas être ouvert
    """
    relay = TcpRelay(settings.relay)
    logger.info("🚀 Démarrage du proxy TCP pour MCP...")
    try:
        await relay.start()
    except RelayBindError as e:
        logger.error(f"❌ Erreur du serveur proxy: {e.message}")
        return EXIT_STARTUP_FAILURE

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, stop.set)

    status = None
    try:
        try:
            status = await _start_status(settings, relay=relay)
        except RelayBindError as e:
            logger.error(f"❌ {e.message}")
            return EXIT_STARTUP_FAILURE

        host, port = relay.address
        logger.info(f"💡 Configurez le client MCP pour utiliser: {host}:{port}")
        await stop.wait()
        logger.info("🛑 Arrêt du relay demandé")
    finally:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)
        if status is not None:
            await status.stop()
        await relay.stop()

    return EXIT_OK


async def run_supervisor(settings: Settings) -> int:
    """
    Lance le superviseur jusqu'à un arrêt demandé ou l'épuisement du budget.

    Returns:
        Code de sortie du superviseur (0 arrêt propre, 1 abandon)
    """
    supervisor = Supervisor(settings.supervisor)
    logger.info("🚀 Démarrage du superviseur de serveur MCP...")
    supervisor.install_signal_handlers()

    status = None
    try:
        try:
            status = await _start_status(settings, supervisor=supervisor)
        except RelayBindError as e:
            logger.error(f"❌ {e.message}")
            return EXIT_STARTUP_FAILURE
        return await supervisor.run()
    finally:
        supervisor.remove_signal_handlers()
        if status is not None:
            await status.stop()
