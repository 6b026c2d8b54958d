import logging

from starlette.concurrency import run_in_threadpool

from garden.config import Settings
from garden.db.database import build_engine, build_session_factory, init_schema, sqlite_file_path
from garden.services.backup import DatabaseBackup
from garden.services.live_feed import LiveFeedPublisher
from garden.services.participant_store import ParticipantStore
from garden.services.progress_service import ProgressService

logger = logging.getLogger(__name__)


class PortalServices:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.engine = build_engine(settings.database_url)
        self.session_factory = build_session_factory(self.engine)
        self.store = ParticipantStore(self.session_factory)
        self.feed = LiveFeedPublisher(
            self.store,
            queue_size=settings.feed_queue_size,
            send_timeout_seconds=settings.feed_send_timeout_seconds,
            poll_interval_seconds=settings.live_poll_interval_seconds,
        )
        self.backup = self._build_backup()
        self.progress = ProgressService(self.store, self.feed, self.backup)
        self.started = False

    def _build_backup(self) -> DatabaseBackup | None:
        if not self.settings.backup_enabled:
            return None
        source = sqlite_file_path(self.engine)
        if source is None:
            logger.info("Backups disabled: store is not a SQLite file")
            return None
        return DatabaseBackup.for_database(source, self.settings.backup_path)

    async def start(self) -> None:
        if self.started:
            return
        await run_in_threadpool(init_schema, self.engine)
        await self.feed.start()
        self.started = True
        logger.info("Portal services started (%s)", self.engine.url.render_as_string(hide_password=True))

    async def stop(self) -> None:
        if not self.started:
            return
        await self.feed.stop()
        if self.backup is not None:
            await self.backup.wait_idle()
        self.engine.dispose()
        self.started = False
        logger.info("Portal services stopped")
