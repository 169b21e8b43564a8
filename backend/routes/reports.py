"""
Report endpoints: attendance summaries, the dashboard and timetables.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.auth import AuthenticatedUser, get_current_admin, get_current_staff, get_current_user
from core.constants import SessionHalf
from services.reports import ReportService, get_report_service


router = APIRouter(tags=["reports"])


@router.get("/api/reports/attendance-summary")
async def attendance_summary(
    user: AuthenticatedUser = Depends(get_current_staff),
    service: ReportService = Depends(get_report_service)
):
    summary = service.attendance_summary()
    return {"batches": summary, "total": len(summary)}


@router.get("/api/reports/view-attendance")
async def view_attendance(
    date_from: Optional[str] = Query(None, alias="from", description="Start date, YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, alias="to", description="End date, YYYY-MM-DD"),
    batchId: Optional[str] = Query(None),
    half: Optional[SessionHalf] = Query(None),
    user: AuthenticatedUser = Depends(get_current_staff),
    service: ReportService = Depends(get_report_service)
):
    """
    Attendance overview per batch for a date range.

    Teachers only see the batches they are assigned to.
    """
    batches = service.view_attendance(
        date_from,
        date_to,
        batch_id=batchId,
        half=half.value if half else None,
        user=user,
    )
    return {"from": date_from, "to": date_to, "batches": batches}


@router.get("/api/dashboard/stats")
async def dashboard_stats(
    user: AuthenticatedUser = Depends(get_current_admin),
    service: ReportService = Depends(get_report_service)
):
    return service.dashboard_stats()


@router.get("/api/timetables")
async def timetables(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ReportService = Depends(get_report_service)
):
    return {"timetable": service.timetable_for(user)}
