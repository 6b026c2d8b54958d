import asyncio
import logging
import sqlite3
from pathlib import Path

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class DatabaseBackup:
    """Copies the SQLite store to a sibling file after writes.

    Requests that arrive while a copy is running collapse into one follow-up
    copy. Failures are logged; the write that triggered the backup has already
    committed.
    """

    def __init__(self, source: Path, target: Path) -> None:
        self.source = source
        self.target = target
        self._task: asyncio.Task | None = None
        self._pending = False

    @classmethod
    def for_database(cls, source: Path, target: str = "") -> "DatabaseBackup":
        target_path = Path(target) if target else source.with_name(f"{source.name}.backup")
        return cls(source, target_path)

    def schedule(self) -> None:
        if self._task is not None and not self._task.done():
            self._pending = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="database-backup")

    async def wait_idle(self) -> None:
        if self._task is not None:
            await self._task

    def copy_now(self) -> None:
        if not self.source.exists():
            logger.warning("Backup skipped; %s does not exist", self.source)
            return
        self.target.parent.mkdir(parents=True, exist_ok=True)
        source = sqlite3.connect(str(self.source))
        try:
            target = sqlite3.connect(str(self.target))
            try:
                source.backup(target)
            finally:
                target.close()
        finally:
            source.close()
        logger.debug("Database backup written to %s", self.target)

    async def _run(self) -> None:
        while True:
            self._pending = False
            try:
                await run_in_threadpool(self.copy_now)
            except (OSError, sqlite3.Error):
                logger.exception("Failed to create database backup")
            if not self._pending:
                return
