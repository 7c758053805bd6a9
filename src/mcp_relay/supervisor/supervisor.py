"""
Superviseur de processus: maintient un serveur MCP en vie.

Machine à états:

    STARTING -> RUNNING -> EXITED -> RESTARTING -> STARTING ...
                              `-> GIVEN_UP       (budget épuisé, sortie 1)
    STARTING/RUNNING/RESTARTING -> SHUTTING_DOWN  (SIGINT/SIGTERM, sortie 0)

Le compteur de redémarrages n'est modifié que par la boucle de contrôle
(`run`), jamais depuis un callback.
"""
import asyncio
import logging
import os
import signal
import time
from typing import Dict, Any, List, Mapping, Optional

from ..config.settings import SupervisorConfig
from ..core.constants import EXIT_OK, EXIT_GIVEN_UP
from ..core.exceptions import SpawnError
from ..core.models import SupervisorState, SignalKind, ExitStatus
from .output import OutputSink
from .process import ProcessControl, ProcessHandle, AsyncioProcessControl

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Supervisor:
    """
    Lance le processus enfant et le relance selon une politique
    à budget borné et délai fixe.

    Args:
        config: Configuration (commande, budget, délai, env...)
        control: Implémentation de ProcessControl (défaut: asyncio)
        base_env: Environnement hérité par l'enfant (défaut: os.environ)
    """

    def __init__(
        self,
        config: SupervisorConfig,
        control: Optional[ProcessControl] = None,
        base_env: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.sink: Optional[OutputSink] = None
        if control is None:
            if config.stdio == "pipe":
                self.sink = OutputSink(config.output_log)
            control = AsyncioProcessControl(stdio=config.stdio, sink=self.sink)
        self.control = control
        self.base_env = os.environ if base_env is None else base_env

        self.state = SupervisorState.STARTING
        self.history: List[SupervisorState] = [SupervisorState.STARTING]
        self.restart_count = 0
        self.launch_count = 0
        self.handle: Optional[ProcessHandle] = None
        self.last_exit: Optional[ExitStatus] = None
        self.exit_code: Optional[int] = None
        self.started_at: Optional[float] = None

        self._shutdown = asyncio.Event()
        self._shutdown_signal: Optional[str] = None
        self._wait_task: Optional[asyncio.Task] = None
        self._installed_signals: List[int] = []

    # ------------------------------------------------------------------
    # Signaux
    # ------------------------------------------------------------------

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def request_shutdown(self, signame: str = "SIGTERM") -> None:
        """Demande l'arrêt propre (appelé par le handler de signal)."""
        if self._shutdown.is_set():
            return
        self._shutdown_signal = signame
        logger.info(f"🛑 Signal {signame} reçu, arrêt du serveur...")
        self._shutdown.set()

    def install_signal_handlers(self) -> None:
        """Relie SIGINT/SIGTERM à request_shutdown sur la boucle courante."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            self._installed_signals.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            loop.remove_signal_handler(sig)
        self._installed_signals = []

    # ------------------------------------------------------------------
    # Machine à états
    # ------------------------------------------------------------------

    def _transition(self, new_state: SupervisorState) -> None:
        logger.debug(f"Superviseur: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    async def run(self) -> int:
        """
        Boucle de supervision.

        Returns:
            EXIT_OK après un arrêt demandé, EXIT_GIVEN_UP si le budget
            de redémarrages est épuisé
        """
        self.started_at = time.time()
        if self.sink is not None:
            await self.sink.open()

        try:
            while True:
                if self._shutdown.is_set():
                    self.exit_code = await self._shutdown_child()
                    return self.exit_code

                await self._launch_and_wait()

                if self._shutdown.is_set():
                    self.exit_code = await self._shutdown_child()
                    return self.exit_code

                self._transition(SupervisorState.EXITED)

                if self.restart_count >= self.config.max_restarts:
                    self._transition(SupervisorState.GIVEN_UP)
                    logger.error(
                        f"❌ Nombre maximum de redémarrages atteint "
                        f"({self.config.max_restarts}). Abandon."
                    )
                    self.exit_code = EXIT_GIVEN_UP
                    return self.exit_code

                self.restart_count += 1
                self._transition(SupervisorState.RESTARTING)
                remaining = self.config.max_restarts - self.restart_count
                logger.info(
                    f"🔄 Redémarrage du serveur dans {self.config.restart_delay:g}s... "
                    f"({self.restart_count}/{self.config.max_restarts}, "
                    f"{remaining} restant(s) ensuite)"
                )

                if await self._sleep_or_shutdown(self.config.restart_delay):
                    self.exit_code = await self._shutdown_child()
                    return self.exit_code

                self._transition(SupervisorState.STARTING)
        finally:
            self._abandon_child()
            if self.sink is not None:
                await self.sink.close()

    async def _launch_and_wait(self) -> None:
        """STARTING -> RUNNING -> (sortie de l'enfant ou arrêt demandé)."""
        attempt = self.restart_count + 1
        total = self.config.max_restarts + 1
        logger.info(f"🚀 Démarrage du serveur (tentative {attempt}/{total}): {' '.join(self.config.argv)}")

        self.launch_count += 1
        try:
            self.handle = await self.control.spawn(
                self.config.argv,
                self.config.child_env(self.base_env),
                cwd=self.config.cwd,
            )
        except SpawnError as e:
            # Compte comme une sortie inattendue pour le budget
            logger.error(f"❌ Erreur au lancement du serveur: {e.message}")
            self.last_exit = ExitStatus(spawn_failed=True)
            return

        self._transition(SupervisorState.RUNNING)
        logger.info(f"✅ Serveur lancé (pid {self.handle.pid})")

        self._wait_task = asyncio.create_task(self.control.wait(self.handle))
        shutdown_task = asyncio.create_task(self._shutdown.wait())
        try:
            done, _pending = await asyncio.wait(
                {self._wait_task, shutdown_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if not shutdown_task.done():
                shutdown_task.cancel()

        if self._wait_task in done and not self._shutdown.is_set():
            status = self._wait_task.result()
            self._wait_task = None
            self.handle = None
            self.last_exit = status
            logger.info(
                f"📊 Serveur terminé avec code: {status.code}, signal: {status.signal_name}"
            )

    async def _sleep_or_shutdown(self, delay: float) -> bool:
        """Attend `delay` secondes; retourne True si un arrêt a été demandé entre-temps."""
        if delay <= 0:
            return self._shutdown.is_set()
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _shutdown_child(self) -> int:
        """-> SHUTTING_DOWN: SIGTERM à l'enfant, SIGKILL après kill_timeout."""
        self._transition(SupervisorState.SHUTTING_DOWN)

        if self.handle is not None:
            handle = self.handle
            wait_task = self._wait_task or asyncio.create_task(self.control.wait(handle))
            logger.info(f"🛑 Envoi de SIGTERM au serveur (pid {handle.pid})")
            self.control.signal(handle, SignalKind.TERMINATE)
            try:
                status = await asyncio.wait_for(asyncio.shield(wait_task), timeout=self.config.kill_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"⚠️ Le serveur ne s'est pas arrêté en {self.config.kill_timeout:g}s, envoi de SIGKILL"
                )
                self.control.signal(handle, SignalKind.KILL)
                status = await wait_task
            self.last_exit = status
            self.handle = None
            self._wait_task = None
            logger.info(f"📊 Serveur arrêté (code: {status.code}, signal: {status.signal_name})")

        logger.info("👋 Superviseur arrêté proprement")
        return EXIT_OK

    def _abandon_child(self) -> None:
        # Sortie anormale de run() (annulation): ne laisse pas d'enfant orphelin
        if self.handle is not None:
            self.control.signal(self.handle, SignalKind.TERMINATE)
        if self._wait_task is not None and not self._wait_task.done():
            self._wait_task.cancel()

    def snapshot(self) -> Dict[str, Any]:
        """État courant pour l'API de statut."""
        return {
            "state": self.state.value,
            "command": self.config.argv,
            "pid": self.handle.pid if self.handle else None,
            "restart_count": self.restart_count,
            "max_restarts": self.config.max_restarts,
            "restart_delay": self.config.restart_delay,
            "launch_count": self.launch_count,
            "last_exit": self.last_exit.to_dict() if self.last_exit else None,
            "shutdown_signal": self._shutdown_signal,
            "history": [state.value for state in self.history],
            "started_at": self.started_at,
            "exit_code": self.exit_code,
        }
