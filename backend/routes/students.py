"""
Student endpoints: registration, bulk upload, profiles, promotion and
passed-out cleanup.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

from core.auth import (
    AuthenticatedUser,
    ensure_access,
    get_current_admin,
    get_current_staff,
    get_current_user,
)
from core.constants import (
    DEPARTMENTS,
    SECTIONS,
    EMAIL_PATTERN,
    PHONE_PATTERN,
    STUDENT_ID_PATTERN,
    MIN_PASSWORD_LENGTH,
)
from services.students import StudentService, get_student_service


router = APIRouter(prefix="/api/students", tags=["students"])


def _check_department(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if value not in DEPARTMENTS:
        raise ValueError(f"Unknown department: {value}")
    return value


def _check_section(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().upper()
    if value not in SECTIONS:
        raise ValueError(f"Section must be one of {', '.join(SECTIONS)}")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


Department = Annotated[str, AfterValidator(_check_department)]
Section = Annotated[str, AfterValidator(_check_section)]


# Pydantic Models

class StudentRegisterRequest(BaseModel):
    studentId: str = Field(..., pattern=STUDENT_ID_PATTERN)
    name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    rollNumber: str = Field(..., min_length=1)
    registrationNumber: str = Field(..., min_length=1)
    department: Department
    section: Optional[Section] = None
    admissionYear: Optional[int] = Field(None, ge=2000, le=2100)
    currentYear: Optional[int] = Field(None, ge=1, le=4)
    phoneNumber: str = Field(..., pattern=PHONE_PATTERN)
    whatsappNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)

    @field_validator("whatsappNumber", "section", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class CheckExistenceRequest(BaseModel):
    studentId: Optional[str] = None
    email: Optional[str] = None


class BulkCreateRequest(BaseModel):
    students: List[Dict[str, Any]]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None


class PersonalDetails(BaseModel):
    fatherName: Optional[str] = None
    motherName: Optional[str] = None
    fatherPhone: Optional[str] = None
    motherPhone: Optional[str] = None
    fatherOccupation: Optional[str] = None
    motherOccupation: Optional[str] = None
    bloodGroup: Optional[str] = None
    schoolName: Optional[str] = None


class SchoolResult(BaseModel):
    board: Optional[str] = None
    percentage: Optional[float] = Field(None, ge=0, le=100)


class SemesterResults(BaseModel):
    """SGPA per semester, on a 10 point scale."""
    sem1: Optional[float] = Field(None, ge=0, le=10)
    sem2: Optional[float] = Field(None, ge=0, le=10)
    sem3: Optional[float] = Field(None, ge=0, le=10)
    sem4: Optional[float] = Field(None, ge=0, le=10)
    sem5: Optional[float] = Field(None, ge=0, le=10)
    sem6: Optional[float] = Field(None, ge=0, le=10)
    sem7: Optional[float] = Field(None, ge=0, le=10)
    sem8: Optional[float] = Field(None, ge=0, le=10)


class AcademicTest(BaseModel):
    id: str
    testName: str = Field(..., min_length=1)
    testDate: str
    maxMarks: float = Field(..., gt=0)
    marksObtained: float = Field(..., ge=0)

    @model_validator(mode="after")
    def marks_within_max(self):
        if self.marksObtained > self.maxMarks:
            raise ValueError("Marks obtained cannot exceed max marks")
        return self


class Academics(BaseModel):
    class10: Optional[SchoolResult] = None
    class12: Optional[SchoolResult] = None
    semesters: Optional[SemesterResults] = None
    tests: Optional[List[AcademicTest]] = None


class StudentUpdateRequest(BaseModel):
    # Staff only
    name: Optional[str] = Field(None, min_length=2)
    department: Optional[Department] = None
    section: Optional[Section] = None
    currentYear: Optional[int] = Field(None, ge=1, le=4)
    rollNumber: Optional[str] = None
    registrationNumber: Optional[str] = None
    # Student editable
    phoneNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    whatsappNumber: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[Address] = None
    permanentAddress: Optional[Address] = None
    personalDetails: Optional[PersonalDetails] = None
    academics: Optional[Academics] = None

    @field_validator("whatsappNumber", "section", mode="before")
    @classmethod
    def blank_optional(cls, v):
        return _blank_to_none(v)


class PromoteRequest(BaseModel):
    studentIds: List[str]
    action: str
    targetYear: Optional[int] = None


# Endpoints

@router.get("")
async def list_students(
    department: Optional[str] = Query(None),
    currentYear: Optional[int] = Query(None, ge=1, le=4),
    status_filter: Optional[str] = Query(None, alias="status"),
    batchId: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_staff),
    service: StudentService = Depends(get_student_service)
):
    students = service.list_students(
        department=department,
        current_year=currentYear,
        status=status_filter,
        batch_id=batchId,
        search=search,
    )
    return {"students": students, "total": len(students)}


@router.post("/register", status_code=201)
async def register_student(
    body: StudentRegisterRequest,
    service: StudentService = Depends(get_student_service)
):
    data = body.model_dump(exclude={"password"})
    student = service.register_student(data, body.password)
    return {"message": "Student registered successfully", "student": student}


@router.post("/check-existence")
async def check_existence(
    body: CheckExistenceRequest,
    service: StudentService = Depends(get_student_service)
):
    service.check_existence(body.studentId, body.email)
    return {"exists": False, "message": "Student ID and email are available."}


@router.post("/bulk-create")
async def bulk_create(
    body: BulkCreateRequest,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service)
):
    return service.bulk_create(body.students, actor=user)


@router.post("/promote")
async def promote_students(
    body: PromoteRequest,
    user: AuthenticatedUser = Depends(get_current_staff),
    service: StudentService = Depends(get_student_service)
):
    return service.promote(body.studentIds, body.action, body.targetYear, actor=user)


@router.get("/passed-out")
async def list_passed_out(
    user: AuthenticatedUser = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service)
):
    students = service.list_passed_out()
    return {"students": students, "total": len(students)}


@router.delete("/passed-out")
async def delete_passed_out(
    user: AuthenticatedUser = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service)
):
    return service.delete_passed_out(actor=user)


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: StudentService = Depends(get_student_service)
):
    ensure_access(user, student_id)
    return service.get_student(student_id)


@router.put("/{student_id}")
async def update_student(
    student_id: str,
    body: StudentUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: StudentService = Depends(get_student_service)
):
    """
    Update a student profile.

    Students may edit contact details, addresses, personal details and
    academics on their own profile; each such edit is counted. Staff may
    also change identity and placement fields.
    """
    if user.is_student and student_id != user.profile_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this resource")
    if not user.is_student and not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this resource")

    data = body.model_dump(exclude_none=True)
    student = service.update_student(student_id, data, self_edit=user.is_student)
    return {"message": "Profile updated successfully", "student": student}


@router.delete("/{student_id}")
async def delete_student(
    student_id: str,
    user: AuthenticatedUser = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service)
):
    result = service.delete_student(student_id, actor=user)
    return {"message": f"Student {result['name']} deleted successfully.", **result}
