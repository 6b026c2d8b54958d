import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class PendingUpdate:
    request_id: str
    payload: dict
    queued_at: str
    attempts: int = 0


class PendingQueue:
    """Unacknowledged progress updates, kept in a JSON file until delivered."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def items(self) -> list[PendingUpdate]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.error("Pending queue %s is unreadable; starting empty", self.path)
            return []
        return [PendingUpdate(**item) for item in raw]

    def enqueue(self, request_id: str, payload: dict) -> PendingUpdate:
        items = [item for item in self.items() if item.request_id != request_id]
        pending = PendingUpdate(
            request_id=request_id,
            payload=payload,
            queued_at=datetime.now(UTC).isoformat(),
        )
        items.append(pending)
        self._write(items)
        return pending

    def remove(self, request_id: str) -> None:
        self._write([item for item in self.items() if item.request_id != request_id])

    def replace(self, items: list[PendingUpdate]) -> None:
        self._write(items)

    def __len__(self) -> int:
        return len(self.items())

    def _write(self, items: list[PendingUpdate]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(
            json.dumps([asdict(item) for item in items], ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, self.path)
