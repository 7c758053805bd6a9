"""
Capture des sorties du processus enfant (mode stdio = "pipe").
"""
import asyncio
import logging
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Optional, List

import aiofiles

from ..core.constants import OUTPUT_TAIL_LINES

logger = logging.getLogger(__name__)


class OutputSink:
    """
    Reçoit les lignes stdout/stderr de l'enfant.

    Conserve les dernières lignes en mémoire et, si un fichier est
    configuré, les ajoute à ce fichier (écriture asynchrone via aiofiles).
    """

    def __init__(self, log_path: Optional[str] = None, tail_lines: int = OUTPUT_TAIL_LINES):
        self.log_path = Path(log_path).expanduser() if log_path else None
        self.lines: deque = deque(maxlen=tail_lines)
        self._file = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        """Ouvre le fichier de log (mode append)."""
        if self.log_path is None or self._file is not None:
            return
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = await aiofiles.open(self.log_path, "a", encoding="utf-8")
        logger.info(f"📁 Sortie du processus enregistrée dans {self.log_path}")

    async def write_line(self, stream: str, raw_line: bytes) -> None:
        text = raw_line.decode("utf-8", errors="replace").rstrip("\r\n")
        self.lines.append((stream, text))
        logger.debug(f"[{stream}] {text}")

        if self._file is None:
            return
        timestamp = datetime.now().isoformat(timespec="milliseconds")
        async with self._lock:
            await self._file.write(f"{timestamp} [{stream}] {text}\n")
            await self._file.flush()

    def tail(self, count: int = 20) -> List[str]:
        """Retourne les `count` dernières lignes (format "[stream] texte")."""
        if count <= 0:
            return []
        return [f"[{stream}] {text}" for stream, text in list(self.lines)[-count:]]

    async def close(self) -> None:
        if self._file is not None:
            await self._file.close()
            self._file = None
