"""
Host (management) account endpoints. Host only.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_host
from core.constants import EMAIL_PATTERN, MIN_PASSWORD_LENGTH
from services.users import UserService, get_user_service


router = APIRouter(prefix="/api/hosts", tags=["hosts"])


class HostCreateRequest(BaseModel):
    name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


@router.get("")
async def list_hosts(
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    hosts = service.list_hosts()
    return {"hosts": hosts, "total": len(hosts)}


@router.get("/{host_id}")
async def get_host(
    host_id: str,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    """Look up a host by document id or auth uid."""
    return service.get_host(host_id)


@router.post("", status_code=201)
async def create_host(
    body: HostCreateRequest,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    host = service.create_host(body.name, body.email, body.password, actor=user)
    return {"message": "Host created successfully", "host": host}
