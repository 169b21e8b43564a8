"""
Activity log endpoints.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_host, get_current_user
from services.activity import ActivityService, get_activity_service


router = APIRouter(prefix="/api/activity", tags=["activity"])


class ActivityRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=100)
    details: str = ""


@router.get("")
async def list_activity(
    user: AuthenticatedUser = Depends(get_current_host),
    service: ActivityService = Depends(get_activity_service)
):
    """Logs from the last 30 days, newest first."""
    logs = service.list_recent()
    return {"logs": logs, "total": len(logs)}


@router.post("", status_code=201)
async def log_activity(
    body: ActivityRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ActivityService = Depends(get_activity_service)
):
    # User and role always come from the session, never the body
    entry = service.log_for(user, body.action, body.details)
    return {"logged": entry is not None, "entry": entry}
