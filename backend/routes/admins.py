"""
Admin account endpoints. Hosts manage admins; an admin may read and
update their own record.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_host, get_current_user
from core.constants import ApprovalStatus, UserRole, EMAIL_PATTERN, PHONE_PATTERN, USERNAME_PATTERN
from services.users import UserService, get_user_service


router = APIRouter(prefix="/api/admins", tags=["admins"])


class AdminUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    phoneNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    # Host only
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    username: Optional[str] = Field(None, pattern=USERNAME_PATTERN)
    status: Optional[ApprovalStatus] = None


def _ensure_self_or_host(user: AuthenticatedUser, admin_id: str):
    if user.is_host:
        return
    if user.role == UserRole.ADMIN and user.profile_id == admin_id:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this resource")


@router.get("")
async def list_admins(
    status_filter: Optional[str] = Query(None, alias="status"),
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    admins = service.list_admins(status=status_filter)
    return {"admins": admins, "total": len(admins)}


@router.get("/{admin_id}")
async def get_admin(
    admin_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    _ensure_self_or_host(user, admin_id)
    return service.get_admin(admin_id)


@router.put("/{admin_id}")
async def update_admin(
    admin_id: str,
    body: AdminUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    _ensure_self_or_host(user, admin_id)
    data = body.model_dump(exclude_none=True, mode="json")
    if not user.is_host:
        data = {k: v for k, v in data.items() if k in ("name", "phoneNumber")}

    admin = service.update_admin(admin_id, data)
    return {"message": "Admin updated successfully", "admin": admin}


@router.delete("/{admin_id}")
async def delete_admin(
    admin_id: str,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    service.delete_admin(admin_id, actor=user)
    return {"message": "Admin deleted successfully", "id": admin_id}
