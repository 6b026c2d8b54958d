"""Merge rules for participant progress updates.

Everything here is pure: the store loads a ``ProgressState``, hands it to
``merge_progress`` together with the incoming update, and persists the result
only when ``MergeResult.changed`` is set.
"""

import re
from dataclasses import dataclass, field

from garden.schemas.participant import ProgressUpdate
from garden.services.errors import InvalidPayload, MissingIdentifier

MAX_LEVEL = 3
VALID_LEVELS = frozenset({1, 2, 3})
MIN_COMMITMENT = 0
MAX_COMMITMENT = 100

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ProgressState:
    level: int = 0
    seed_name: str | None = None
    flower_image: str | None = None
    commitment_percentage: int | None = None


@dataclass(frozen=True)
class LookupKey:
    user_id: str | None
    phone: str | None


@dataclass(frozen=True)
class MergeResult:
    state: ProgressState
    final_level: int
    changed: bool
    stale_level: bool = False
    ignored: tuple[str, ...] = field(default_factory=tuple)


def normalize_phone(phone: str | None) -> str | None:
    if phone is None:
        return None
    normalized = _WHITESPACE.sub("", phone)
    return normalized or None


def resolve_lookup(user_id: str | None, phone: str | None) -> LookupKey:
    cleaned_id = user_id.strip() if user_id else None
    key = LookupKey(user_id=cleaned_id or None, phone=normalize_phone(phone))
    if key.user_id is None and key.phone is None:
        raise MissingIdentifier()
    return key


def validate_commitment(value: int | None) -> None:
    if value is None:
        return
    if not MIN_COMMITMENT <= value <= MAX_COMMITMENT:
        raise InvalidPayload(
            f"commitmentPercentage must be between {MIN_COMMITMENT} and {MAX_COMMITMENT}"
        )


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def merge_progress(current: ProgressState, update: ProgressUpdate) -> MergeResult:
    """Combine ``update`` with ``current`` without ever lowering the level.

    The final level is computed once from the top-level ``level`` field; any
    level nested in the flower payload is dropped. Blank or missing fields
    keep the stored value. A commitment percentage is only written when the
    merged level is the last one.
    """
    validate_commitment(update.commitment_percentage)
    ignored: list[str] = []

    incoming_level = update.level
    if incoming_level is not None and incoming_level not in VALID_LEVELS:
        ignored.append("level")
        incoming_level = None

    final_level = max(current.level, incoming_level if incoming_level is not None else current.level)
    stale_level = incoming_level is not None and incoming_level < current.level

    seed_name = current.seed_name
    flower_image = current.flower_image
    if update.flower is not None:
        if update.flower.level is not None:
            ignored.append("flower.level")
        seed_name = _clean_text(update.flower.seed_name) or seed_name
        flower_image = _clean_text(update.flower.flower_image) or flower_image

    commitment = current.commitment_percentage
    if update.commitment_percentage is not None:
        if final_level == MAX_LEVEL:
            commitment = update.commitment_percentage
        else:
            ignored.append("commitmentPercentage")

    if update.name is not None:
        # Identity fields only change through registration.
        ignored.append("name")

    merged = ProgressState(
        level=final_level,
        seed_name=seed_name,
        flower_image=flower_image,
        commitment_percentage=commitment,
    )
    return MergeResult(
        state=merged,
        final_level=final_level,
        changed=merged != current,
        stale_level=stale_level,
        ignored=tuple(ignored),
    )
