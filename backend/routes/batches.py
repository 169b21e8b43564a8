"""
Batch endpoints: CRUD, rosters, teacher assignment and self enrollment.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from core.auth import (
    AuthenticatedUser,
    get_current_admin,
    get_current_staff,
    get_current_student,
    get_current_user,
)
from core.constants import BatchStatus
from services.batches import BatchService, batch_departments, get_batch_service


router = APIRouter(prefix="/api/batches", tags=["batches"])


# Pydantic Models

class BatchCreateRequest(BaseModel):
    name: str
    topic: str
    departments: List[str] = Field(..., min_length=1)
    startDate: str
    endDate: str
    daysOfWeek: List[str] = Field(..., min_length=1)
    startTime: str
    endTime: str
    startTimeSecondHalf: Optional[str] = None
    endTimeSecondHalf: Optional[str] = None
    roomNumber: Optional[str] = None
    teacherIds: List[str] = []
    studentIds: List[str] = []


class BatchUpdateRequest(BaseModel):
    name: Optional[str] = None
    topic: Optional[str] = None
    departments: Optional[List[str]] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    daysOfWeek: Optional[List[str]] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    startTimeSecondHalf: Optional[str] = None
    endTimeSecondHalf: Optional[str] = None
    roomNumber: Optional[str] = None
    status: Optional[BatchStatus] = None
    teacherIds: Optional[List[str]] = None
    studentIds: Optional[List[str]] = None


class StudentIdsRequest(BaseModel):
    studentIds: List[str]


class TeacherIdsRequest(BaseModel):
    teacherIds: List[str]


class EnrollRequest(BaseModel):
    batchId: str = Field(..., min_length=1)


# Endpoints

@router.get("")
async def list_batches(
    mine: bool = Query(False, description="Only batches the caller teaches or attends"),
    status_filter: Optional[BatchStatus] = Query(None, alias="status"),
    department: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    status_value = status_filter.value if status_filter else None
    if mine:
        batches = service.list_for_user(user, status=status_value)
        if department:
            batches = [b for b in batches if department.lower() in batch_departments(b)]
    else:
        batches = service.list_batches(status=status_value, department=department)
    return {"batches": batches, "total": len(batches)}


@router.post("", status_code=201)
async def create_batch(
    body: BatchCreateRequest,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    result = service.create_batch(body.model_dump(), actor=user)
    return {"message": "Batch created successfully", **result}


@router.post("/enroll")
async def enroll(
    body: EnrollRequest,
    user: AuthenticatedUser = Depends(get_current_student),
    service: BatchService = Depends(get_batch_service)
):
    """Self-enroll the signed-in student in a batch."""
    batch = service.enroll(body.batchId, user.profile_id)
    return {"message": f"Enrolled in {batch.get('name')}", "batchId": body.batchId}


@router.get("/{batch_id}")
async def get_batch(
    batch_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: BatchService = Depends(get_batch_service)
):
    return service.get_batch(batch_id)


@router.put("/{batch_id}")
async def update_batch(
    batch_id: str,
    body: BatchUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    data = body.model_dump(exclude_none=True, mode="json")
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided for update.")
    result = service.update_batch(batch_id, data, actor=user)
    return {"message": "Batch updated successfully", **result}


@router.delete("/{batch_id}")
async def delete_batch(
    batch_id: str,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: BatchService = Depends(get_batch_service)
):
    result = service.delete_batch(batch_id, actor=user)
    return {"message": "Batch deleted successfully", **result}


@router.get("/{batch_id}/students")
async def get_roster(
    batch_id: str,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    students = service.get_roster(batch_id)
    return {"students": students, "total": len(students)}


@router.post("/{batch_id}/students")
async def add_students(
    batch_id: str,
    body: StudentIdsRequest,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    return service.add_students(batch_id, body.studentIds, actor=user)


@router.delete("/{batch_id}/students/{student_id}")
async def remove_student(
    batch_id: str,
    student_id: str,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    return service.remove_student(batch_id, student_id, actor=user)


@router.post("/{batch_id}/teachers")
async def add_teachers(
    batch_id: str,
    body: TeacherIdsRequest,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: BatchService = Depends(get_batch_service)
):
    return service.add_teachers(batch_id, body.teacherIds, actor=user)


@router.delete("/{batch_id}/teachers/{teacher_id}")
async def remove_teacher(
    batch_id: str,
    teacher_id: str,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: BatchService = Depends(get_batch_service)
):
    return service.remove_teacher(batch_id, teacher_id, actor=user)


@router.get("/{batch_id}/eligible-students")
async def eligible_students(
    batch_id: str,
    search: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_staff),
    service: BatchService = Depends(get_batch_service)
):
    """Active students of the batch's departments who can still be added."""
    students = service.eligible_students(batch_id, search=search)
    return {"students": students, "total": len(students)}
