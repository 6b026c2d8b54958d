from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query

from garden.dependencies import get_progress_service, to_http_error
from garden.schemas.participant import (
    ParticipantListResponse,
    ParticipantOut,
    ParticipantResponse,
    ProgressResponse,
    ProgressUpdate,
)
from garden.services.errors import PortalError
from garden.services.progress_service import ProgressService

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/update-progress", response_model=ProgressResponse)
async def update_progress(
    payload: ProgressUpdate,
    service: ProgressService = Depends(get_progress_service),
):
    try:
        outcome = await service.update_progress(payload)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return ProgressResponse(
        final_level=outcome.final_level,
        changed=outcome.changed,
        user=ParticipantOut.from_model(outcome.participant),
    )


@router.get("", response_model=ParticipantListResponse)
async def list_users(
    progress_level: int | None = Query(default=None, alias="progressLevel", ge=0, le=3),
    service: ProgressService = Depends(get_progress_service),
):
    try:
        participants = await service.list_participants(progress_level)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return ParticipantListResponse(
        users=[ParticipantOut.from_model(participant) for participant in participants],
        count=len(participants),
        timestamp=datetime.now(UTC),
    )


@router.get("/lookup", response_model=ParticipantResponse)
async def lookup_user(
    user_id: str | None = Query(default=None, alias="userId"),
    phone: str | None = Query(default=None),
    service: ProgressService = Depends(get_progress_service),
):
    try:
        participant = await service.get_participant(user_id=user_id, phone=phone)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return ParticipantResponse(user=ParticipantOut.from_model(participant))


@router.get("/{phone}", response_model=ParticipantResponse)
async def get_user_by_phone(
    phone: str,
    service: ProgressService = Depends(get_progress_service),
):
    try:
        participant = await service.get_participant(phone=phone)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return ParticipantResponse(user=ParticipantOut.from_model(participant))
