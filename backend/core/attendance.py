"""
Attendance aggregation.

Pure functions over attendance record dicts as stored in Firestore:
    {studentId, batchId, date, subject, status, half?}

Late counts as attended when computing percentages.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import AttendanceStatus, SessionHalf


def count_statuses(records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Count present/absent/late marks. Unknown statuses are ignored."""
    counts = {"present": 0, "absent": 0, "late": 0, "total": 0}
    for record in records:
        status = record.get("status")
        if status in counts and status != "total":
            counts[status] += 1
            counts["total"] += 1
    return counts


def attendance_percentage(present: int, late: int, total: int) -> float:
    """Share of marks that were present or late, as a percentage."""
    if total <= 0:
        return 0.0
    return round((present + late) / total * 100, 2)


def summarize_by_batch(
    batches: Iterable[Dict[str, Any]],
    records: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Per-batch mark counts over all given records.

    Every batch gets an entry even when it has no records. Records that
    reference unknown batches are dropped.
    """
    summary: Dict[str, Dict[str, Any]] = {}
    for batch in batches:
        summary[batch["id"]] = {
            "batchId": batch["id"],
            "batchName": batch.get("name", ""),
            "departments": batch.get("departments", []),
            "totalStudents": len(batch.get("studentIds") or []),
            "present": 0,
            "absent": 0,
            "late": 0,
            "totalMarks": 0,
        }

    for record in records:
        stats = summary.get(record.get("batchId"))
        if stats is None:
            continue
        status = record.get("status")
        if status not in ("present", "absent", "late"):
            continue
        stats[status] += 1
        stats["totalMarks"] += 1

    return list(summary.values())


def summarize_view(
    batches: Iterable[Dict[str, Any]],
    teachers: Dict[str, Dict[str, Any]],
    records: Iterable[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Attendance overview for a date range.

    Args:
        batches: Batches to report on
        teachers: Teacher profiles keyed by document id
        records: Attendance records already filtered to the range

    Returns:
        One entry per batch with totals, distinct session count and
        attendance percentage
    """
    summary: Dict[str, Dict[str, Any]] = {}
    sessions: Dict[str, set] = {}

    for batch in batches:
        teacher_names = [
            teachers[tid].get("name")
            for tid in batch.get("teacherIds") or []
            if tid in teachers and teachers[tid].get("name")
        ]
        summary[batch["id"]] = {
            "batchId": batch["id"],
            "batchName": batch.get("name", ""),
            "topic": batch.get("topic", ""),
            "teacherNames": teacher_names,
            "studentCount": len(batch.get("studentIds") or []),
            "totalSessions": 0,
            "totalPresent": 0,
            "totalAbsent": 0,
            "totalLate": 0,
            "attendancePercentage": 0.0,
        }
        sessions[batch["id"]] = set()

    field_for_status = {
        AttendanceStatus.PRESENT.value: "totalPresent",
        AttendanceStatus.ABSENT.value: "totalAbsent",
        AttendanceStatus.LATE.value: "totalLate",
    }

    for record in records:
        entry = summary.get(record.get("batchId"))
        field = field_for_status.get(record.get("status"))
        if entry is None or field is None:
            continue
        entry[field] += 1
        sessions[record["batchId"]].add((record.get("date"), record.get("half") or SessionHalf.FIRST.value))

    for batch_id, entry in summary.items():
        total = entry["totalPresent"] + entry["totalAbsent"] + entry["totalLate"]
        entry["totalSessions"] = len(sessions[batch_id])
        entry["attendancePercentage"] = attendance_percentage(
            entry["totalPresent"], entry["totalLate"], total
        )

    return list(summary.values())


def summarize_student(records: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals and per-batch breakdown of one student's records."""
    records = list(records)
    overall = count_statuses(records)

    by_batch: Dict[str, List[Dict[str, Any]]] = {}
    for record in records:
        by_batch.setdefault(record.get("batchId"), []).append(record)

    batches = []
    for batch_id, batch_records in sorted(by_batch.items(), key=lambda item: str(item[0])):
        counts = count_statuses(batch_records)
        batches.append({
            "batchId": batch_id,
            **counts,
            "percentage": attendance_percentage(counts["present"], counts["late"], counts["total"]),
        })

    return {
        **overall,
        "percentage": attendance_percentage(overall["present"], overall["late"], overall["total"]),
        "batches": batches,
    }


def diff_attendance(
    existing: Iterable[Dict[str, Any]],
    submitted: Dict[str, str]
) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]], int]:
    """
    Work out which marks to write for one session.

    Args:
        existing: Stored records for the session (need id, studentId, status)
        submitted: studentId -> status from the attendance sheet

    Returns:
        (to_create [(studentId, status)], to_update [(docId, status)], unchanged)
    """
    stored: Dict[str, Dict[str, Any]] = {}
    for record in existing:
        stored[record["studentId"]] = record

    to_create: List[Tuple[str, str]] = []
    to_update: List[Tuple[str, str]] = []
    unchanged = 0

    for student_id, status in submitted.items():
        record: Optional[Dict[str, Any]] = stored.get(student_id)
        if record is None:
            to_create.append((student_id, status))
        elif record.get("status") != status:
            to_update.append((record["id"], status))
        else:
            unchanged += 1

    return to_create, to_update, unchanged
