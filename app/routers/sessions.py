from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.dependencies.auth import get_auth_service, get_current_user
from app.schemas.auth import SessionResponse
from app.services.auth_service import AuthService
from app.utils.errors import NotFound

router = APIRouter(prefix="/auth/sessions", tags=["sessions"])


@router.get("", status_code=200)
async def list_sessions(
    current_user=Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """List the caller's live sessions, flagging the one this access token belongs to."""
    records = await run_in_threadpool(auth_service.list_sessions, current_user["user_id"])
    current_family = current_user.get("sid")
    data = []
    for record in records:
        item = SessionResponse.model_validate(record)
        item.current = record.family_id == current_family
        data.append(item)
    return {"success": True, "data": data}


@router.delete("/{session_id}", status_code=200)
async def revoke_session(
    session_id: str,
    current_user=Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Revoke one of the caller's sessions; anything else is reported as not found."""
    revoked = await run_in_threadpool(auth_service.revoke_session, current_user["user_id"], session_id)
    if not revoked:
        raise NotFound("Session not found")
    return {"success": True, "message": "Session revoked"}


@router.delete("", status_code=200)
async def revoke_other_sessions(
    current_user=Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Sign out everywhere except the current session."""
    revoked = await run_in_threadpool(
        auth_service.revoke_other_sessions, current_user["user_id"], current_user.get("sid"),
    )
    return {"success": True, "data": {"revoked": revoked}}
