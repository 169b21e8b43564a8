"""
Staff registration and the host approval workflow.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_admin, get_current_host
from core.constants import UserRole, EMAIL_PATTERN, MIN_PASSWORD_LENGTH, USERNAME_PATTERN
from services.users import UserService, get_user_service


router = APIRouter(prefix="/api/users", tags=["users"])


class StaffRegisterRequest(BaseModel):
    name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    role: UserRole
    department: Optional[str] = None
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class ApproveRequest(BaseModel):
    username: str = Field(..., pattern=USERNAME_PATTERN)


@router.post("/register", status_code=201)
async def register_staff(
    body: StaffRegisterRequest,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: UserService = Depends(get_user_service)
):
    """Register a teacher or admin; the account stays disabled until approved."""
    profile = service.register_staff(
        name=body.name,
        email=body.email,
        role=body.role,
        password=body.password,
        department=body.department,
        actor=user,
    )
    return {"message": "Registration submitted for approval", "user": profile}


@router.get("/pending")
async def list_pending(
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    return service.list_pending()


@router.post("/{role}/{user_id}/approve")
async def approve_user(
    role: UserRole,
    user_id: str,
    body: ApproveRequest,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    approved = service.approve(role, user_id, body.username, actor=user)
    return {"message": f"{role.value.capitalize()} approved", "user": approved}


@router.post("/{role}/{user_id}/reject")
async def reject_user(
    role: UserRole,
    user_id: str,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    rejected = service.reject(role, user_id, actor=user)
    return {"message": f"{role.value.capitalize()} rejected", "user": rejected}


@router.post("/{role}/{user_id}/suspend")
async def suspend_user(
    role: UserRole,
    user_id: str,
    user: AuthenticatedUser = Depends(get_current_host),
    service: UserService = Depends(get_user_service)
):
    suspended = service.suspend(role, user_id, actor=user)
    return {"message": f"{role.value.capitalize()} suspended", "user": suspended}
