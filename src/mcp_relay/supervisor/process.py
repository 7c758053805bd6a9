"""
Interface de contrôle des processus enfants.

Le superviseur ne manipule jamais directement les APIs de processus de l'OS:
il passe par `ProcessControl` (spawn / wait / signal), ce qui permet de
tester la machine à états avec une implémentation factice.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..core.exceptions import SpawnError
from ..core.models import ExitStatus, SignalKind
from .output import OutputSink

logger = logging.getLogger(__name__)

# Délai max pour vider stdout/stderr après la sortie de l'enfant
OUTPUT_DRAIN_TIMEOUT = 1.0


@dataclass
class ProcessHandle:
    """Processus enfant vivant (ou venant de se terminer)."""
    pid: Optional[int]
    process: Optional[asyncio.subprocess.Process] = None
    output_tasks: List[asyncio.Task] = field(default_factory=list)


class ProcessControl(ABC):
    """Opérations minimales nécessaires au superviseur."""

    @abstractmethod
    async def spawn(self, argv: List[str], env: Dict[str, str], cwd: Optional[str] = None) -> ProcessHandle:
        """
        Lance un processus.

        Raises:
            SpawnError: Si l'exécutable ne peut pas être lancé
        """

    @abstractmethod
    async def wait(self, handle: ProcessHandle) -> ExitStatus:
        """Attend la fin du processus et retourne son statut de sortie."""

    @abstractmethod
    def signal(self, handle: ProcessHandle, kind: SignalKind) -> None:
        """Envoie une demande d'arrêt (SIGTERM ou SIGKILL) au processus."""


class AsyncioProcessControl(ProcessControl):
    """
    Implémentation basée sur asyncio.create_subprocess_exec.

    Args:
        stdio: "inherit" (l'enfant partage stdout/stderr du superviseur)
            ou "pipe" (sorties lues ligne par ligne et envoyées au sink)
        sink: Destination des lignes en mode pipe
    """

    def __init__(self, stdio: str = "inherit", sink: OutputSink = None):
        self.stdio = stdio
        self.sink = sink
        if self.stdio == "pipe" and self.sink is None:
            self.sink = OutputSink()

    async def spawn(self, argv: List[str], env: Dict[str, str], cwd: Optional[str] = None) -> ProcessHandle:
        pipe = asyncio.subprocess.PIPE if self.stdio == "pipe" else None
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL if self.stdio == "pipe" else None,
                stdout=pipe,
                stderr=pipe,
                env=env,
                cwd=cwd,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(f"Impossible de lancer {argv[0]}: {e}", command=argv[0]) from e

        handle = ProcessHandle(pid=proc.pid, process=proc)
        if self.stdio == "pipe":
            handle.output_tasks = [
                asyncio.create_task(self._pump_output(proc.stdout, "stdout")),
                asyncio.create_task(self._pump_output(proc.stderr, "stderr")),
            ]
        return handle

    async def _pump_output(self, stream: asyncio.StreamReader, name: str) -> None:
        while True:
            line = await stream.readline()
            if not line:
                return
            await self.sink.write_line(name, line)

    async def wait(self, handle: ProcessHandle) -> ExitStatus:
        returncode = await handle.process.wait()

        # Laisse stdout/stderr se vider (EOF). Ne cancel qu'en dernier recours.
        for task in handle.output_tasks:
            try:
                await asyncio.wait_for(task, timeout=OUTPUT_DRAIN_TIMEOUT)
            except asyncio.TimeoutError:
                pass
            except (OSError, ValueError) as e:
                logger.warning(f"Lecture de la sortie du processus {handle.pid} interrompue: {e}")
        handle.output_tasks = []

        return ExitStatus.from_returncode(returncode)

    def signal(self, handle: ProcessHandle, kind: SignalKind) -> None:
        proc = handle.process
        if proc is None or proc.returncode is not None:
            return
        try:
            if kind is SignalKind.KILL:
                proc.kill()
            else:
                proc.terminate()
        except ProcessLookupError:
            pass
