from typing import Literal

from pydantic import Field

from garden.schemas.participant import (
    CamelModel,
    LiveParticipant,
    ParticipantOut,
    ProgressUpdate,
    StrictCamelModel,
)

UPDATE_SUBMITTED = "update-submitted"
UPDATE_ACKNOWLEDGED = "update-acknowledged"
UPDATE_REJECTED = "update-rejected"
SNAPSHOT_CHANGED = "snapshot-changed"
CONNECTED = "connected"


class UpdateSubmitted(StrictCamelModel):
    type: Literal["update-submitted"]
    request_id: str | None = Field(default=None, max_length=100)
    payload: ProgressUpdate


class ChannelEvent(CamelModel):
    type: str
    timestamp: str


class ConnectedEvent(ChannelEvent):
    connection_id: str
    poll_interval_seconds: int
    participants: list[LiveParticipant]


class UpdateAcknowledgedEvent(ChannelEvent):
    request_id: str | None
    final_level: int
    changed: bool
    user: ParticipantOut


class UpdateRejectedEvent(ChannelEvent):
    request_id: str | None
    error: str
    code: str
    status_code: int


class SnapshotChangedEvent(ChannelEvent):
    participant: LiveParticipant
