from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from garden.dependencies import get_progress_service, to_http_error
from garden.schemas.participant import ParticipantListResponse, ParticipantOut, WinnerResponse
from garden.services.errors import PortalError
from garden.services.progress_merge import MAX_LEVEL
from garden.services.progress_service import ProgressService

router = APIRouter(prefix="/api", tags=["giveaway"])


@router.get("/giveaway-users", response_model=ParticipantListResponse)
async def giveaway_users(service: ProgressService = Depends(get_progress_service)):
    try:
        eligible = await service.list_participants(progress_level=MAX_LEVEL)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return ParticipantListResponse(
        users=[ParticipantOut.from_model(participant) for participant in eligible],
        count=len(eligible),
        timestamp=datetime.now(UTC),
    )


@router.post("/giveaway/draw", response_model=WinnerResponse)
async def draw(service: ProgressService = Depends(get_progress_service)):
    try:
        winner, eligible_count = await service.draw_winner()
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return WinnerResponse(winner=ParticipantOut.from_model(winner), eligible_count=eligible_count)
