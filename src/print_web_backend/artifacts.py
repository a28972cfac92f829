"""
Lifecycle of generated intermediate PDFs.

Every document produced by the composer lives in a scratch directory owned by
:class:`TempArtifactStore`. Artifacts are removed in two independent ways:

- a per-artifact timer started when the document has been handed to the
  spooler (``retention_seconds`` after submission)
- a periodic sweep deleting anything older than ``max_age_seconds``, which
  catches files left behind by crashes or skipped timers

Deletion is best-effort: failures are logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from .utils import ensure_directory, epoch_millis, sanitize_label

logger = logging.getLogger(__name__)


class TempArtifactStore:
    """
    Scratch-area manager for composer output.

    Attributes:
        directory: Scratch directory holding generated documents
        retention_seconds: Delay between spooler hand-off and deletion
        sweep_interval_seconds: Period of the age-based sweep
        max_age_seconds: Age after which the sweep deletes a file
    """

    def __init__(
        self,
        directory: Path,
        retention_seconds: float = 60.0,
        sweep_interval_seconds: float = 600.0,
        max_age_seconds: float = 3600.0,
    ) -> None:
        self.directory = ensure_directory(Path(directory))
        self.retention_seconds = retention_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.max_age_seconds = max_age_seconds
        self._pending: Dict[asyncio.Task, Path] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def artifact_path(self, source: Path, operation: str) -> Path:
        """
        Reserve a unique output path for an operation on ``source``.

        The name embeds the source stem, the operation label and a
        millisecond timestamp; a short random token keeps two operations
        started in the same millisecond apart.

        Example:
            report.pdf + "odd" -> temp/report-odd-1718000000000-3fa2c1.pdf
        """
        stem = sanitize_label(Path(source).stem, fallback="document")
        label = sanitize_label(operation, fallback="output")
        return self.directory / f"{stem}-{label}-{epoch_millis()}-{uuid4().hex[:6]}.pdf"

    def schedule_removal(
        self,
        path: Path,
        original: Path,
        delay: Optional[float] = None,
    ) -> Optional[asyncio.Task]:
        """
        Delete ``path`` after ``delay`` seconds unless it is the original upload.

        Must be called from a running event loop. Returns the timer task, or
        ``None`` when nothing was scheduled.
        """
        if Path(path).resolve() == Path(original).resolve():
            return None
        wait = self.retention_seconds if delay is None else delay
        task = asyncio.get_running_loop().create_task(self._remove_later(Path(path), wait))
        self._pending[task] = Path(path)
        task.add_done_callback(lambda done: self._pending.pop(done, None))
        return task

    async def _remove_later(self, path: Path, delay: float) -> None:
        await asyncio.sleep(delay)
        self.remove(path)

    def remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning(f"Failed to remove artifact {path}: {exc}")
            return False
        logger.debug(f"Removed artifact {path}")
        return True

    def sweep(self, max_age: Optional[float] = None) -> int:
        """
        Delete scratch files whose modification time is older than ``max_age``.

        Returns:
            Number of files deleted
        """
        limit = self.max_age_seconds if max_age is None else max_age
        now = time.time()
        removed = 0
        try:
            entries = list(self.directory.iterdir())
        except OSError as exc:
            logger.warning(f"Cannot list scratch directory {self.directory}: {exc}")
            return 0

        for entry in entries:
            try:
                if not entry.is_file() or now - entry.stat().st_mtime <= limit:
                    continue
            except OSError as exc:
                logger.warning(f"Cannot stat {entry}: {exc}")
                continue
            if self.remove(entry):
                removed += 1

        if removed:
            logger.info(f"Swept {removed} stale artifact(s) from {self.directory}")
        return removed

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            await asyncio.to_thread(self.sweep)

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
            logger.info(f"Artifact sweep every {self.sweep_interval_seconds}s in {self.directory}")

    async def stop(self) -> None:
        """
        Cancel the sweep and any retention timers that have not fired yet.

        Files whose timers are cancelled are removed immediately; failures are
        logged.
        """
        timers = dict(self._pending)
        tasks = list(timers)
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()

        removed = sum(1 for path in timers.values() if self.remove(path))
        if removed:
            logger.info(f"Removed {removed} artifact(s) with pending retention timers on shutdown")
