import json
import logging
from datetime import UTC, datetime
from typing import Any

import pydantic
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from garden.dependencies import get_services, to_http_error
from garden.schemas.events import (
    UPDATE_ACKNOWLEDGED,
    UPDATE_REJECTED,
    UPDATE_SUBMITTED,
    UpdateAcknowledgedEvent,
    UpdateRejectedEvent,
    UpdateSubmitted,
)
from garden.schemas.participant import LiveDataResponse, ParticipantOut
from garden.services.container import PortalServices
from garden.services.errors import InvalidPayload, PortalError, StorageError
from garden.services.live_feed import ObserverState
from garden.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["live"])


@router.get("/live-data", response_model=LiveDataResponse)
async def live_data(services: PortalServices = Depends(get_services)):
    try:
        participants = await services.progress.pull_snapshot()
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return LiveDataResponse(
        participants=participants,
        count=len(participants),
        poll_interval_seconds=services.settings.live_poll_interval_seconds,
        timestamp=datetime.now(UTC),
    )


@router.websocket("/socket")
async def progress_socket(websocket: WebSocket):
    services: PortalServices = websocket.app.state.services
    await websocket.accept()
    connection = await services.feed.connect(websocket)
    if connection.state != ObserverState.connected:
        await websocket.close(code=1011)
        return

    try:
        while True:
            raw = await websocket.receive_text()
            reply = await handle_channel_message(services.progress, raw)
            await connection.send(reply)
    except WebSocketDisconnect:
        pass
    finally:
        services.feed.disconnect(connection)


async def handle_channel_message(service: ProgressService, raw: str) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        return _rejected(None, InvalidPayload("Message is not valid JSON"))

    request_id = message.get("requestId") if isinstance(message, dict) else None
    if not isinstance(request_id, str):
        request_id = None
    if not isinstance(message, dict) or message.get("type") != UPDATE_SUBMITTED:
        return _rejected(request_id, InvalidPayload(f"Expected a '{UPDATE_SUBMITTED}' event"))

    try:
        submitted = UpdateSubmitted.model_validate(message)
    except pydantic.ValidationError as exc:
        return _rejected(request_id, InvalidPayload(_describe(exc)))

    try:
        outcome = await service.update_progress(submitted.payload)
    except PortalError as exc:
        return _rejected(submitted.request_id, exc)

    event = UpdateAcknowledgedEvent(
        type=UPDATE_ACKNOWLEDGED,
        timestamp=_ts(),
        request_id=submitted.request_id,
        final_level=outcome.final_level,
        changed=outcome.changed,
        user=ParticipantOut.from_model(outcome.participant),
    )
    return event.model_dump(mode="json", by_alias=True)


def _rejected(request_id: str | None, exc: PortalError) -> dict[str, Any]:
    error = "Internal server error" if isinstance(exc, StorageError) else str(exc)
    event = UpdateRejectedEvent(
        type=UPDATE_REJECTED,
        timestamp=_ts(),
        request_id=request_id,
        error=error,
        code=exc.code,
        status_code=exc.status_code,
    )
    return event.model_dump(mode="json", by_alias=True)


def _describe(exc: pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "invalid payload")


def _ts() -> str:
    return datetime.now(UTC).isoformat()
