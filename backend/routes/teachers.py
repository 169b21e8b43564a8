"""
Teacher endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, get_current_admin, get_current_user
from core.constants import ApprovalStatus, DEPARTMENTS, EMAIL_PATTERN, PHONE_PATTERN, USERNAME_PATTERN
from services.users import UserService, get_user_service


router = APIRouter(prefix="/api/teachers", tags=["teachers"])

SELF_EDITABLE_FIELDS = {"name", "phoneNumber", "whatsappNumber"}


class TeacherUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    phoneNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    whatsappNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    # Admin and host only
    department: Optional[str] = None
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    username: Optional[str] = Field(None, pattern=USERNAME_PATTERN)
    status: Optional[ApprovalStatus] = None


@router.get("")
async def list_teachers(
    status_filter: Optional[str] = Query(None, alias="status"),
    user: AuthenticatedUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    """
    List teachers. Active teachers only unless an admin asks for a
    status, or "all".
    """
    status_value = ApprovalStatus.ACTIVE.value
    if status_filter and user.is_admin:
        if status_filter == "all":
            status_value = None
        elif status_filter in {s.value for s in ApprovalStatus}:
            status_value = status_filter
        else:
            raise HTTPException(status_code=400, detail="Invalid status filter value.")

    teachers = service.list_teachers(status=status_value)
    return {"teachers": teachers, "total": len(teachers)}


@router.get("/{teacher_id}")
async def get_teacher(
    teacher_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_teacher(teacher_id)


@router.put("/{teacher_id}")
async def update_teacher(
    teacher_id: str,
    body: TeacherUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    """Teachers may change their own name and phone numbers; admins anything."""
    data = body.model_dump(exclude_none=True, mode="json")

    if not user.is_admin:
        if user.profile_id != teacher_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this resource")
        data = {k: v for k, v in data.items() if k in SELF_EDITABLE_FIELDS}

    if "department" in data:
        data["department"] = data["department"].strip().lower()
        if data["department"] not in DEPARTMENTS:
            raise HTTPException(status_code=400, detail=f"Unknown department: {data['department']}")

    teacher = service.update_teacher(teacher_id, data)
    return {"message": "Teacher updated successfully", "teacher": teacher}


@router.delete("/{teacher_id}")
async def delete_teacher(
    teacher_id: str,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: UserService = Depends(get_user_service)
):
    result = service.delete_teacher(teacher_id, actor=user)
    return {"message": "Teacher deleted successfully", **result}
