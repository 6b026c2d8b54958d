from fastapi import APIRouter, Depends

from garden.dependencies import get_progress_service, to_http_error
from garden.schemas.participant import ParticipantOut, RegisterRequest, RegisterResponse
from garden.services.errors import PortalError
from garden.services.progress_service import ProgressService

router = APIRouter(prefix="/api", tags=["registration"])


@router.post("/register", response_model=RegisterResponse)
async def register(
    payload: RegisterRequest,
    service: ProgressService = Depends(get_progress_service),
):
    try:
        outcome = await service.register(payload.name, payload.phone, payload.employee_id)
    except PortalError as exc:
        raise to_http_error(exc) from exc
    return RegisterResponse(
        created=outcome.created,
        message=outcome.message,
        user=ParticipantOut.from_model(outcome.participant),
    )
