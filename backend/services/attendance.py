"""
Attendance Service

Records per-session attendance marks and reads them back for students,
teachers and reports.

A session is identified by (batchId, date, half). Saving a session's sheet
upserts one record per student: new marks are created, changed marks
updated, and unchanged marks left alone, all in one write batch.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from core.config import get_firestore_client, initialize_firebase
from core.constants import (
    AttendanceStatus,
    SessionHalf,
    ATTENDANCE_COLLECTION,
    BATCHES_COLLECTION,
    STUDENTS_COLLECTION,
    FIRESTORE_BATCH_LIMIT,
)
from core.attendance import diff_attendance, summarize_student
from core.exceptions import InvalidRequestError, NotFoundError, PermissionDeniedError
from core.parsers import chunked
from core.schedule import BatchScheduleManager, parse_date
from services.batches import can_manage_batch

VALID_STATUSES = {s.value for s in AttendanceStatus}


def record_half(record: Dict[str, Any]) -> str:
    """Records saved before halves existed belong to the first half."""
    return record.get("half") or SessionHalf.FIRST.value


class AttendanceService:
    """Service for attendance records in Firebase Firestore."""

    ATTENDANCE_COLLECTION = ATTENDANCE_COLLECTION
    BATCHES_COLLECTION = BATCHES_COLLECTION
    STUDENTS_COLLECTION = STUDENTS_COLLECTION

    def __init__(self):
        self.db = get_firestore_client()

    def _records(self):
        return self.db.collection(self.ATTENDANCE_COLLECTION)

    def _get_batch(self, batch_id: str) -> Dict[str, Any]:
        doc = self.db.collection(self.BATCHES_COLLECTION).document(batch_id).get()
        if not doc.exists:
            raise NotFoundError("Batch not found.")
        data = doc.to_dict()
        data["id"] = doc.id
        return data

    def _session_records(self, batch_id: str, date: str, half: str) -> List[Dict[str, Any]]:
        query = self._records().where("batchId", "==", batch_id).where("date", "==", date)
        records = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            if record_half(data) == half:
                records.append(data)
        return records

    def _normalize_date(self, value: str) -> str:
        try:
            day = parse_date(value)
        except ValueError as e:
            raise InvalidRequestError(str(e))
        if day is None:
            raise InvalidRequestError("Date is required (YYYY-MM-DD).")
        return day.isoformat()

    def save_attendance(
        self,
        batch_id: str,
        date: str,
        subject: str,
        records: Dict[str, str],
        half: str = SessionHalf.FIRST.value,
        user=None
    ) -> Dict[str, Any]:
        """
        Save the attendance sheet for one session.

        Raises:
            NotFoundError: Batch doesn't exist
            PermissionDeniedError: User doesn't manage the batch
            InvalidRequestError: Unknown student, bad status, or date
                outside the batch
        """
        if not records:
            raise InvalidRequestError("No attendance records submitted.")
        if not (subject or "").strip():
            raise InvalidRequestError("Subject is required.")
        half = SessionHalf(half).value
        date = self._normalize_date(date)

        batch = self._get_batch(batch_id)
        if user is not None and not can_manage_batch(batch, user):
            raise PermissionDeniedError("You are not assigned to this batch.")

        if not BatchScheduleManager.is_date_within_batch(batch, date):
            raise InvalidRequestError("Date is outside the batch's schedule.")

        roster = set(batch.get("studentIds") or [])
        unknown = sorted(sid for sid in records if sid not in roster)
        if unknown:
            raise InvalidRequestError(f"Students not in this batch: {', '.join(unknown)}")

        invalid = sorted(sid for sid, status in records.items() if status not in VALID_STATUSES)
        if invalid:
            raise InvalidRequestError(f"Invalid attendance status for: {', '.join(invalid)}")

        existing = self._session_records(batch_id, date, half)
        to_create, to_update, unchanged = diff_attendance(existing, records)

        now = datetime.utcnow().isoformat()
        operations = [("create", sid, status) for sid, status in to_create]
        operations += [("update", doc_id, status) for doc_id, status in to_update]

        # A session's sheet fits in one commit; larger ones fall back to chunks
        for chunk in chunked(operations, FIRESTORE_BATCH_LIMIT):
            write = self.db.batch()
            for kind, key, status in chunk:
                if kind == "create":
                    write.set(self._records().document(), {
                        "studentId": key,
                        "batchId": batch_id,
                        "date": date,
                        "half": half,
                        "subject": subject.strip(),
                        "status": status,
                        "markedBy": getattr(user, "uid", None),
                        "createdAt": now,
                        "updatedAt": now,
                    })
                else:
                    write.update(self._records().document(key), {
                        "status": status,
                        "updatedAt": now,
                    })
            write.commit()

        print(f"[Attendance] {batch_id} {date} ({half}): {len(to_create)} created, "
              f"{len(to_update)} updated, {unchanged} unchanged")
        return {
            "created": len(to_create),
            "updated": len(to_update),
            "unchanged": unchanged,
        }

    def get_records(
        self,
        student_id: Optional[str] = None,
        batch_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Records for a student and/or batch, oldest first."""
        if not student_id and not batch_id:
            raise InvalidRequestError("Student ID or batch ID is required.")

        query = self._records()
        if student_id:
            query = query.where("studentId", "==", student_id)
        if batch_id:
            query = query.where("batchId", "==", batch_id)

        records = []
        for doc in query.stream():
            data = doc.to_dict()
            data["id"] = doc.id
            records.append(data)
        records.sort(key=lambda r: (r.get("date") or "", record_half(r)))
        return records

    def get_sheet(
        self,
        batch_id: str,
        date: str,
        half: str = SessionHalf.FIRST.value,
        user=None
    ) -> Dict[str, Any]:
        """
        Roster of a batch with each student's mark for one session.

        Unmarked students have status None.
        """
        half = SessionHalf(half).value
        date = self._normalize_date(date)
        batch = self._get_batch(batch_id)
        if user is not None and not can_manage_batch(batch, user):
            raise PermissionDeniedError("You are not assigned to this batch.")

        marks = {r["studentId"]: r for r in self._session_records(batch_id, date, half)}

        rows = []
        students = self.db.collection(self.STUDENTS_COLLECTION)
        for student_id in batch.get("studentIds") or []:
            doc = students.document(student_id).get()
            if not doc.exists:
                continue
            student = doc.to_dict()
            mark = marks.get(student_id)
            rows.append({
                "studentId": student_id,
                "name": student.get("name"),
                "rollNumber": student.get("rollNumber"),
                "status": mark.get("status") if mark else None,
            })
        rows.sort(key=lambda r: (r.get("name") or "").lower())

        return {
            "batchId": batch_id,
            "batchName": batch.get("name"),
            "date": date,
            "half": half,
            "subject": next((m.get("subject") for m in marks.values()), batch.get("topic")),
            "students": rows,
        }

    def student_summary(self, student_id: str) -> Dict[str, Any]:
        """Totals, percentage and per-batch breakdown for one student."""
        records = self.get_records(student_id=student_id)
        summary = summarize_student(records)

        batches = self.db.collection(self.BATCHES_COLLECTION)
        for entry in summary["batches"]:
            doc = batches.document(entry["batchId"]).get() if entry["batchId"] else None
            entry["batchName"] = doc.to_dict().get("name") if doc is not None and doc.exists else None

        summary["studentId"] = student_id
        summary["records"] = records
        return summary


_attendance_service: Optional[AttendanceService] = None


def get_attendance_service() -> AttendanceService:
    """Get or create the attendance service singleton."""
    global _attendance_service
    if _attendance_service is None:
        initialize_firebase()
        _attendance_service = AttendanceService()
    return _attendance_service
