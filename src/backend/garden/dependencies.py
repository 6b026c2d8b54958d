from fastapi import HTTPException, Request

from garden.services.container import PortalServices
from garden.services.errors import PortalError, StorageError
from garden.services.progress_service import ProgressService


def get_services(request: Request) -> PortalServices:
    return request.app.state.services


def get_progress_service(request: Request) -> ProgressService:
    return get_services(request).progress


def to_http_error(exc: PortalError) -> HTTPException:
    if isinstance(exc, StorageError):
        return HTTPException(status_code=exc.status_code, detail="Internal server error")
    return HTTPException(status_code=exc.status_code, detail=str(exc))
