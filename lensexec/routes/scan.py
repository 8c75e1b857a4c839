from fastapi import APIRouter, HTTPException, status

from lensexec.schemas.annotation import Annotation
from lensexec.schemas.base import BaseSchema
from lensexec.services.collaborators import CaptureError
from lensexec.services.session import SessionStatus, get_session

router = APIRouter(tags=["scan"])


class ConnectivityRequest(BaseSchema):
    online: bool


@router.post("/scan/start", response_model=SessionStatus)
async def start_scan() -> SessionStatus:
    session = get_session()
    try:
        await session.start()
    except CaptureError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "CAMERA_UNAVAILABLE", "message": str(e)},
        ) from None
    return session.status()


@router.post("/scan/stop", response_model=SessionStatus)
async def stop_scan() -> SessionStatus:
    session = get_session()
    await session.stop()
    return session.status()


@router.get("/scan/status", response_model=SessionStatus)
async def read_status() -> SessionStatus:
    return get_session().status()


@router.get("/annotations", response_model=list[Annotation])
async def list_annotations() -> list[Annotation]:
    return get_session().annotations()


@router.put("/connectivity", response_model=SessionStatus)
async def update_connectivity(request: ConnectivityRequest) -> SessionStatus:
    session = get_session()
    session.set_connectivity(request.online)
    return session.status()
