import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from starlette.concurrency import run_in_threadpool

from garden.schemas.events import CONNECTED, SNAPSHOT_CHANGED, ConnectedEvent, SnapshotChangedEvent
from garden.schemas.participant import LiveParticipant
from garden.services.errors import StorageError
from garden.services.participant_store import ParticipantStore

logger = logging.getLogger(__name__)


class ObserverState(str, Enum):
    connecting = "connecting"
    connected = "connected"
    disconnected = "disconnected"


class Channel(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class ObserverConnection:
    channel: Channel
    connection_id: str = field(default_factory=lambda: f"obs-{uuid4().hex[:12]}")
    state: ObserverState = ObserverState.connecting
    connected_at: datetime | None = None
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def send(self, payload: dict) -> None:
        async with self._send_lock:
            await self.channel.send_json(payload)


def _ts() -> str:
    return datetime.now(UTC).isoformat()


class LiveFeedPublisher:
    """Pushes participant deltas to display observers and serves snapshot pulls.

    Pushes are best effort: ``publish`` only enqueues, a worker task delivers,
    and anything that goes wrong on the way is logged and dropped. Observers
    stay correct by polling ``pull_snapshot``.
    """

    def __init__(
        self,
        store: ParticipantStore,
        *,
        queue_size: int = 256,
        send_timeout_seconds: float = 2.0,
        poll_interval_seconds: int = 5,
    ) -> None:
        self.store = store
        self.queue_size = queue_size
        self.send_timeout_seconds = send_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._observers: dict[str, ObserverConnection] = {}
        self._last_known: dict[str, LiveParticipant] = {}
        self._publish_seq = 0
        self._published_at: dict[str, int] = {}
        self._queue: asyncio.Queue[LiveParticipant] | None = None
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def observer_count(self) -> int:
        return sum(1 for conn in self._observers.values() if conn.state == ObserverState.connected)

    def last_known(self) -> list[LiveParticipant]:
        return list(self._last_known.values())

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._worker = asyncio.create_task(self._run(self._queue), name="live-feed-publisher")
        try:
            await self.pull_snapshot()
        except StorageError:
            logger.warning("Live feed started without an initial snapshot")
        logger.info("Live feed publisher started")

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
        for connection in list(self._observers.values()):
            self.disconnect(connection)
        logger.info("Live feed publisher stopped")

    async def connect(self, channel: Channel) -> ObserverConnection:
        connection = ObserverConnection(channel=channel)
        self._observers[connection.connection_id] = connection
        hello = ConnectedEvent(
            type=CONNECTED,
            timestamp=_ts(),
            connection_id=connection.connection_id,
            poll_interval_seconds=self.poll_interval_seconds,
            participants=self.last_known(),
        )
        try:
            await asyncio.wait_for(
                connection.send(hello.model_dump(mode="json", by_alias=True)),
                timeout=self.send_timeout_seconds,
            )
        except Exception:
            logger.warning("Observer %s failed during handshake", connection.connection_id)
            self.disconnect(connection)
            return connection

        connection.state = ObserverState.connected
        connection.connected_at = datetime.now(UTC)
        logger.info(
            "Observer %s connected (%d active)", connection.connection_id, self.observer_count
        )
        return connection

    def disconnect(self, connection: ObserverConnection) -> None:
        if connection.state == ObserverState.disconnected:
            return
        connection.state = ObserverState.disconnected
        self._observers.pop(connection.connection_id, None)
        logger.info(
            "Observer %s disconnected (%d active)", connection.connection_id, self.observer_count
        )

    def publish(self, participant: LiveParticipant) -> bool:
        if participant.flower.seed_name or participant.flower.flower_image:
            self._publish_seq += 1
            self._published_at[participant.id] = self._publish_seq
            self._last_known[participant.id] = participant
        if self._queue is None:
            logger.debug("Live feed not running; push for %s dropped", participant.id)
            return False
        try:
            self._queue.put_nowait(participant)
        except asyncio.QueueFull:
            logger.warning("Live feed queue full; push for %s dropped", participant.id)
            return False
        return True

    async def broadcast(self, payload: dict) -> int:
        targets = [
            conn for conn in self._observers.values() if conn.state == ObserverState.connected
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(
                asyncio.wait_for(conn.send(payload), timeout=self.send_timeout_seconds)
                for conn in targets
            ),
            return_exceptions=True,
        )
        delivered = 0
        for conn, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping observer %s after failed push: %r", conn.connection_id, result)
                self.disconnect(conn)
            else:
                delivered += 1
        return delivered

    async def pull_snapshot(self) -> list[LiveParticipant]:
        read_from = self._publish_seq
        participants = await run_in_threadpool(self.store.list_with_flower)
        snapshot = [LiveParticipant.from_model(participant) for participant in participants]

        # Pushes that landed while the read was in flight are newer than it.
        newer = {
            participant_id: item
            for participant_id, item in self._last_known.items()
            if self._published_at.get(participant_id, 0) > read_from
        }
        self._last_known = {item.id: item for item in snapshot}
        self._last_known.update(newer)
        self._published_at = {
            participant_id: seq for participant_id, seq in self._published_at.items() if seq > read_from
        }
        return snapshot

    async def drain(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    async def _run(self, queue: asyncio.Queue[LiveParticipant]) -> None:
        while True:
            participant = await queue.get()
            try:
                event = SnapshotChangedEvent(
                    type=SNAPSHOT_CHANGED,
                    timestamp=_ts(),
                    participant=participant,
                )
                await self.broadcast(event.model_dump(mode="json", by_alias=True))
            except Exception:
                logger.exception("Live feed fan-out failed for %s", participant.id)
            finally:
                queue.task_done()
