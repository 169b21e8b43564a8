"""
Attendance endpoints: saving a session's sheet and reading records back.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from core.auth import AuthenticatedUser, ensure_access, get_current_staff, get_current_user
from core.constants import AttendanceStatus, SessionHalf
from services.attendance import AttendanceService, get_attendance_service


router = APIRouter(prefix="/api/attendance", tags=["attendance"])


class SaveAttendanceRequest(BaseModel):
    batchId: str = Field(..., min_length=1)
    date: str = Field(..., description="Session date, YYYY-MM-DD")
    subject: str = Field(..., min_length=1)
    half: SessionHalf = SessionHalf.FIRST
    records: Dict[str, AttendanceStatus]


@router.post("/save")
async def save_attendance(
    body: SaveAttendanceRequest,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: AttendanceService = Depends(get_attendance_service)
):
    """Save the marks of one session. Only assigned teachers and admins may save."""
    result = service.save_attendance(
        batch_id=body.batchId,
        date=body.date,
        subject=body.subject,
        records={sid: mark.value for sid, mark in body.records.items()},
        half=body.half.value,
        user=user,
    )
    return {"message": "Attendance saved successfully", **result}


@router.get("")
async def get_records(
    studentId: Optional[str] = Query(None),
    batchId: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service)
):
    if user.is_student:
        studentId = studentId or user.profile_id
        ensure_access(user, studentId)
    elif not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this resource")

    records = service.get_records(student_id=studentId, batch_id=batchId)
    return {"records": records, "total": len(records)}


@router.get("/sheet")
async def get_sheet(
    batchId: str = Query(...),
    date: str = Query(..., description="Session date, YYYY-MM-DD"),
    half: SessionHalf = Query(SessionHalf.FIRST),
    user: AuthenticatedUser = Depends(get_current_staff),
    service: AttendanceService = Depends(get_attendance_service)
):
    return service.get_sheet(batchId, date, half=half.value, user=user)


@router.get("/student/{student_id}/summary")
async def student_summary(
    student_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service)
):
    ensure_access(user, student_id)
    return service.student_summary(student_id)
