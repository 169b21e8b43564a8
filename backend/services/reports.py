"""
Report Service

Read-only aggregations for dashboards: attendance summaries, the
management dashboard counters and weekly timetables.
"""

from typing import Any, Dict, List, Optional

from core.config import get_firestore_client, initialize_firebase
from core.constants import (
    ApprovalStatus,
    BatchStatus,
    StudentStatus,
    UserRole,
    ATTENDANCE_COLLECTION,
    BATCHES_COLLECTION,
    ROLE_COLLECTIONS,
)
from core.attendance import summarize_by_batch, summarize_view
from core.exceptions import InvalidRequestError
from core.schedule import build_timetable, parse_date
from services.attendance import record_half
from services.cache import get_cache, is_cache_available


class ReportService:
    """Service for reports computed over Firestore collections."""

    ATTENDANCE_COLLECTION = ATTENDANCE_COLLECTION
    BATCHES_COLLECTION = BATCHES_COLLECTION

    def __init__(self, use_cache: bool = True):
        self.db = get_firestore_client()
        self._use_cache = use_cache and is_cache_available()
        self._cache = get_cache() if self._use_cache else None

    def _stream(self, query) -> List[Dict[str, Any]]:
        items = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            items.append(data)
        return items

    def _all_batches(self) -> List[Dict[str, Any]]:
        return self._stream(self.db.collection(self.BATCHES_COLLECTION))

    def _batches_for(self, user) -> List[Dict[str, Any]]:
        """Every batch for admins and hosts, assigned or enrolled batches otherwise."""
        batches = self._all_batches()
        if user is None or user.is_admin:
            return batches
        if user.role == UserRole.TEACHER:
            return [b for b in batches if user.profile_id in (b.get("teacherIds") or [])]
        return [b for b in batches if user.profile_id in (b.get("studentIds") or [])]

    # --- Attendance ---

    def attendance_summary(self) -> List[Dict[str, Any]]:
        """Mark counts per batch over all recorded attendance."""
        batches = self._all_batches()
        records = self._stream(self.db.collection(self.ATTENDANCE_COLLECTION))
        return summarize_by_batch(batches, records)

    def view_attendance(
        self,
        date_from: str,
        date_to: str,
        batch_id: Optional[str] = None,
        half: Optional[str] = None,
        user=None
    ) -> List[Dict[str, Any]]:
        """
        Attendance overview for a date range.

        Teachers only see batches they are assigned to. When half is
        given, only that half's records are counted.

        Raises:
            InvalidRequestError: Missing or inverted date range
        """
        if not date_from or not date_to:
            raise InvalidRequestError('A "from" and "to" date range is required.')
        try:
            start = parse_date(date_from)
            end = parse_date(date_to)
        except ValueError as e:
            raise InvalidRequestError(str(e))
        if end < start:
            raise InvalidRequestError('"from" must not be after "to".')

        batches = self._batches_for(user)
        if batch_id:
            batches = [b for b in batches if b["id"] == batch_id]

        teacher_ids = {tid for b in batches for tid in (b.get("teacherIds") or [])}
        teachers = {}
        teachers_collection = self.db.collection(ROLE_COLLECTIONS[UserRole.TEACHER])
        for teacher_id in teacher_ids:
            doc = teachers_collection.document(teacher_id).get()
            if doc.exists:
                teachers[teacher_id] = doc.to_dict()

        query = (
            self.db.collection(self.ATTENDANCE_COLLECTION)
            .where("date", ">=", start.isoformat())
            .where("date", "<=", end.isoformat())
        )
        records = self._stream(query)
        if half:
            records = [r for r in records if record_half(r) == half]

        return summarize_view(batches, teachers, records)

    # --- Dashboard ---

    def _count(self, collection: str, field: Optional[str] = None, value: Any = None) -> int:
        query = self.db.collection(collection)
        if field is not None:
            query = query.where(field, "==", value)
        return sum(1 for _ in query.select([]).stream())

    def dashboard_stats(self) -> Dict[str, Any]:
        """Headline counts for the management dashboard."""
        if self._use_cache and self._cache:
            cached = self._cache.get_dashboard_stats()
            if cached:
                return cached

        students = ROLE_COLLECTIONS[UserRole.STUDENT]
        teachers = ROLE_COLLECTIONS[UserRole.TEACHER]
        admins = ROLE_COLLECTIONS[UserRole.ADMIN]
        hosts = ROLE_COLLECTIONS[UserRole.HOST]
        pending = ApprovalStatus.PENDING.value

        batches_by_status = {status.value: 0 for status in BatchStatus}
        for batch in self._all_batches():
            status = batch.get("status")
            if status in batches_by_status:
                batches_by_status[status] += 1

        stats = {
            "students": {
                "active": self._count(students, "status", StudentStatus.ACTIVE.value),
                "passedOut": self._count(students, "status", StudentStatus.PASSED_OUT.value),
            },
            "teachers": self._count(teachers, "status", ApprovalStatus.ACTIVE.value),
            "admins": self._count(admins, "status", ApprovalStatus.ACTIVE.value),
            "hosts": self._count(hosts),
            "pendingApprovals": self._count(teachers, "status", pending) + self._count(admins, "status", pending),
            "batches": {
                "total": sum(batches_by_status.values()),
                "byStatus": batches_by_status,
            },
        }

        if self._use_cache and self._cache:
            self._cache.set_dashboard_stats(stats)
        return stats

    # --- Timetables ---

    def timetable_for(self, user) -> List[Dict[str, Any]]:
        """Weekly timetable of the batches visible to the user. Completed batches are left out."""
        batches = [
            b for b in self._batches_for(user)
            if b.get("status") != BatchStatus.COMPLETED.value
        ]
        return build_timetable(batches)


_report_service: Optional[ReportService] = None


def get_report_service() -> ReportService:
    """Get or create the report service singleton."""
    global _report_service
    if _report_service is None:
        initialize_firebase()
        _report_service = ReportService()
    return _report_service
