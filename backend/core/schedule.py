"""
Batch Schedule Utilities

Batch lifecycle:
- Before startDate: Scheduled
- startDate through endDate (inclusive): Ongoing
- After endDate: Completed

A batch meets on its daysOfWeek between startTime and endTime. Batches
split into two halves also carry startTimeSecondHalf/endTimeSecondHalf.

Time Format: HH:MM (24 hour)
Date Format: YYYY-MM-DD (longer ISO strings are truncated to the date)
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import BatchStatus, DAYS_OF_WEEK, SessionHalf

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# Lifecycle position of each status; refreshes only move a batch forward
STATUS_ORDER = {
    BatchStatus.SCHEDULED.value: 0,
    BatchStatus.ONGOING.value: 1,
    BatchStatus.COMPLETED.value: 2,
}


def parse_time(value: str) -> int:
    """
    Convert an HH:MM string to minutes since midnight.

    Raises:
        ValueError: If the value is not a valid 24 hour HH:MM time
    """
    if not value or not TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time (HH:MM): {value}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_time_range(start: str, end: str) -> None:
    """Ensure both times parse and end is strictly after start."""
    if parse_time(end) <= parse_time(start):
        raise ValueError("End time must be after start time.")


def parse_date(value: Any) -> Optional[date]:
    """Parse a YYYY-MM-DD (or full ISO timestamp) string into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValueError(f"Invalid date (YYYY-MM-DD): {value}")


def normalize_day(day: str) -> str:
    """Map 'monday', 'MON' or 'Monday' to the canonical day name."""
    key = (day or "").strip().lower()
    for name in DAYS_OF_WEEK:
        if key in (name.lower(), name.lower()[:3]):
            return name
    raise ValueError(f"Invalid day of week: {day}")


def days_overlap(days1: Iterable[str], days2: Iterable[str]) -> bool:
    """Check if two meeting day lists share a day."""
    set1 = {d.lower() for d in (days1 or [])}
    set2 = {d.lower() for d in (days2 or [])}
    return bool(set1 & set2)


def times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Check if two time ranges overlap. Touching ranges do not overlap."""
    if not all([start1, end1, start2, end2]):
        return False

    s1, e1 = parse_time(start1), parse_time(end1)
    s2, e2 = parse_time(start2), parse_time(end2)

    return s1 < e2 and s2 < e1


def date_ranges_overlap(batch1: Dict[str, Any], batch2: Dict[str, Any]) -> bool:
    """Open ended ranges (missing dates) are treated as unbounded."""
    start1, end1 = parse_date(batch1.get("startDate")), parse_date(batch1.get("endDate"))
    start2, end2 = parse_date(batch2.get("startDate")), parse_date(batch2.get("endDate"))

    if end1 and start2 and end1 < start2:
        return False
    if end2 and start1 and end2 < start1:
        return False
    return True


def batch_slots(batch: Dict[str, Any]) -> List[Tuple[str, str, str]]:
    """Return (half, start, end) for every time slot a batch occupies."""
    slots = []
    if batch.get("startTime") and batch.get("endTime"):
        slots.append((SessionHalf.FIRST.value, batch["startTime"], batch["endTime"]))
    if batch.get("startTimeSecondHalf") and batch.get("endTimeSecondHalf"):
        slots.append((
            SessionHalf.SECOND.value,
            batch["startTimeSecondHalf"],
            batch["endTimeSecondHalf"],
        ))
    return slots


def batches_conflict(batch1: Dict[str, Any], batch2: Dict[str, Any]) -> bool:
    """
    Check whether two batches would put the same person in two places.

    Batches conflict when their date ranges overlap, they share a meeting
    day, and any of their time slots overlap.
    """
    if batch1.get("id") and batch1.get("id") == batch2.get("id"):
        return False
    if not days_overlap(batch1.get("daysOfWeek"), batch2.get("daysOfWeek")):
        return False
    if not date_ranges_overlap(batch1, batch2):
        return False

    for _, start1, end1 in batch_slots(batch1):
        for _, start2, end2 in batch_slots(batch2):
            if times_overlap(start1, end1, start2, end2):
                return True
    return False


def find_conflict(
    batch: Dict[str, Any],
    others: Iterable[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """Return the first non-completed batch in others that conflicts."""
    for other in others:
        if other.get("status") == BatchStatus.COMPLETED.value:
            continue
        if batches_conflict(batch, other):
            return other
    return None


class BatchScheduleManager:
    """Derives batch status transitions from batch dates"""

    @staticmethod
    def derive_status(
        start_date: Any,
        end_date: Any,
        today: Optional[date] = None
    ) -> BatchStatus:
        """
        Determine where a batch is in its lifecycle.

        Returns:
            Scheduled before start, Ongoing within range, Completed after end
        """
        today = today or date.today()
        start = parse_date(start_date)
        end = parse_date(end_date)

        if end and today > end:
            return BatchStatus.COMPLETED
        if start and today >= start:
            return BatchStatus.ONGOING
        return BatchStatus.SCHEDULED

    @staticmethod
    def status_for_batch(batch: Dict[str, Any], today: Optional[date] = None) -> str:
        return BatchScheduleManager.derive_status(
            batch.get("startDate"), batch.get("endDate"), today
        ).value

    @staticmethod
    def needs_status_update(batch: Dict[str, Any], today: Optional[date] = None) -> bool:
        """
        Check if a stored status lags behind the batch dates.

        Statuses only move forward, so a stored Completed (or an Ongoing
        set early by an admin) is never rewritten to an earlier stage.
        """
        derived = BatchScheduleManager.status_for_batch(batch, today)
        stored = STATUS_ORDER.get(batch.get("status"), -1)
        return STATUS_ORDER[derived] > stored

    @staticmethod
    def is_date_within_batch(batch: Dict[str, Any], value: Any) -> bool:
        """Check if a session date falls inside the batch date range"""
        day = parse_date(value)
        start = parse_date(batch.get("startDate"))
        end = parse_date(batch.get("endDate"))

        if day is None:
            return False
        if start and day < start:
            return False
        if end and day > end:
            return False
        return True


def build_timetable(batches: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Flatten batches into weekly timetable entries.

    Returns:
        Entries sorted by weekday, then start time, then batch name
    """
    entries = []
    for batch in batches:
        for day in batch.get("daysOfWeek") or []:
            try:
                day_name = normalize_day(day)
            except ValueError:
                continue
            for half, start, end in batch_slots(batch):
                entries.append({
                    "dayOfWeek": day_name,
                    "startTime": start,
                    "endTime": end,
                    "half": half,
                    "subject": batch.get("topic", ""),
                    "batchId": batch.get("id"),
                    "batchName": batch.get("name", ""),
                    "roomNumber": batch.get("roomNumber"),
                })

    day_order = {name: index for index, name in enumerate(DAYS_OF_WEEK)}
    entries.sort(key=lambda e: (day_order[e["dayOfWeek"]], e["startTime"], e["batchName"]))
    return entries
