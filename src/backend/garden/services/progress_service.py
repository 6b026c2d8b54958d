import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from starlette.concurrency import run_in_threadpool

from garden.models.participant import Participant
from garden.schemas.participant import LiveParticipant, ProgressUpdate
from garden.services.backup import DatabaseBackup
from garden.services.errors import NotFound
from garden.services.giveaway import draw_winner
from garden.services.keyed_lock import KeyedLock
from garden.services.live_feed import LiveFeedPublisher
from garden.services.participant_store import ParticipantStore
from garden.services.progress_merge import MAX_LEVEL, MergeResult, resolve_lookup
from garden.services.registration import validate_registration

logger = logging.getLogger(__name__)

T = TypeVar("T")

MESSAGE_CREATED = "User registered successfully"
MESSAGE_UPDATED = "User updated"


@dataclass
class RegistrationOutcome:
    participant: Participant
    created: bool

    @property
    def message(self) -> str:
        return MESSAGE_CREATED if self.created else MESSAGE_UPDATED


@dataclass
class ProgressOutcome:
    participant: Participant
    merge: MergeResult

    @property
    def final_level(self) -> int:
        return self.merge.final_level

    @property
    def changed(self) -> bool:
        return self.merge.changed


class ProgressService:
    """Transport-neutral entry point for registration and progress updates.

    Both the HTTP routes and the WebSocket channel call into this class. Writes
    for one participant are serialized; writes for different participants run
    side by side.
    """

    def __init__(
        self,
        store: ParticipantStore,
        feed: LiveFeedPublisher,
        backup: DatabaseBackup | None = None,
    ) -> None:
        self.store = store
        self.feed = feed
        self.backup = backup
        self._progress_locks = KeyedLock()
        self._registration_locks = KeyedLock()

    async def register(self, name: str, phone: str, employee_id: str) -> RegistrationOutcome:
        registration = validate_registration(name, phone, employee_id)
        async with self._registration_locks.hold((registration.name, registration.phone)):
            participant, created = await self._settle(self.store.upsert_registration, registration)

        logger.info(
            "Participant %s %s (%s)",
            participant.id,
            "registered" if created else "re-registered",
            participant.phone,
        )
        self._after_write(participant, publish=False)
        return RegistrationOutcome(participant=participant, created=created)

    async def update_progress(self, update: ProgressUpdate) -> ProgressOutcome:
        key = resolve_lookup(update.user_id, update.phone)
        participant_id = await run_in_threadpool(self.store.resolve_id, key)
        if participant_id is None:
            logger.warning("Progress update for unknown participant (id=%s phone=%s)", key.user_id, key.phone)
            raise NotFound()

        async with self._progress_locks.hold(participant_id):
            participant, result = await self._settle(
                self.store.apply_progress, participant_id, update
            )

        if result.stale_level:
            logger.info(
                "Participant %s already at level %d; level %s treated as applied",
                participant_id,
                result.final_level,
                update.level,
            )
        if result.ignored:
            logger.debug("Participant %s update ignored fields %s", participant_id, result.ignored)

        if result.changed:
            logger.info("Participant %s progress stored at level %d", participant_id, result.final_level)
            self._after_write(participant)
        return ProgressOutcome(participant=participant, merge=result)

    async def get_participant(self, user_id: str | None = None, phone: str | None = None) -> Participant:
        key = resolve_lookup(user_id, phone)
        participant = await run_in_threadpool(self.store.get, key)
        if participant is None:
            raise NotFound()
        return participant

    async def list_participants(self, progress_level: int | None = None) -> list[Participant]:
        return await run_in_threadpool(self.store.list_participants, progress_level)

    async def pull_snapshot(self) -> list[LiveParticipant]:
        return await self.feed.pull_snapshot()

    async def draw_winner(self, rng: random.Random | None = None) -> tuple[Participant, int]:
        eligible = await self.list_participants(progress_level=MAX_LEVEL)
        winner = draw_winner(eligible, rng)
        logger.info("Giveaway winner drawn: %s among %d eligible", winner.id, len(eligible))
        return winner, len(eligible)

    async def _settle(self, func: Callable[..., T], *args: Any) -> T:
        # The store call runs to completion even if the caller is cancelled, and
        # the caller's lock stays held until it has committed or rolled back.
        task = asyncio.ensure_future(run_in_threadpool(func, *args))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning("Store call failed after caller cancelled: %r", task.exception())
            raise

    def _after_write(self, participant: Participant, publish: bool = True) -> None:
        if publish:
            try:
                self.feed.publish(LiveParticipant.from_model(participant))
            except Exception:
                logger.exception("Live feed publish failed for %s", participant.id)
        if self.backup is not None:
            try:
                self.backup.schedule()
            except Exception:
                logger.exception("Backup scheduling failed after write for %s", participant.id)
