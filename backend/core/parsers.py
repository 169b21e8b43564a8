"""
Shared parsing utilities for uploaded student spreadsheets.

Bulk uploads arrive as rows keyed by the spreadsheet's header text. Header
spelling varies between exports ("Phone No." vs "Phone No" vs "phone_no"),
so lookups fall back to a normalized comparison.
"""

import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

# Student field -> accepted header spellings
STUDENT_HEADERS: Dict[str, List[str]] = {
    "name": ["Student Name"],
    "studentId": ["Student ID"],
    "rollNumber": ["University Roll No.", "University Roll No"],
    "registrationNumber": ["University Registration No.", "University Registration No"],
    "department": ["Department"],
    "admissionYear": ["Admission Year"],
    "currentYear": ["Current Academic Year"],
    "email": ["Email"],
    "whatsappNumber": ["WhatsApp No.", "WhatsApp No"],
    "phoneNumber": ["Phone No.", "Phone No"],
}

REQUIRED_STUDENT_FIELDS = [
    "studentId", "name", "email", "rollNumber", "registrationNumber",
    "department", "admissionYear", "currentYear", "phoneNumber",
]


def _normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


def find_value(row: Dict[str, Any], keys: List[str]) -> Any:
    """
    Find a value in a row by any of the given header spellings.

    Exact header matches win; otherwise headers are compared ignoring case
    and punctuation.
    """
    for key in keys:
        if row.get(key) is not None:
            return row[key]

    wanted = [_normalize_header(k) for k in keys]
    for header, value in row.items():
        if _normalize_header(header) in wanted and value is not None:
            return value
    return None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    # Spreadsheet exports turn numeric cells into floats ("9876543210.0")
    if re.fullmatch(r"\d+\.0", text):
        text = text[:-2]
    return text or None


def parse_int(value: Any) -> Optional[int]:
    """Parse an int from a cell value, returning None when not numeric."""
    text = _clean(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def parse_student_row(row: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Map one uploaded spreadsheet row onto student fields.

    Returns:
        (student data, list of missing required fields)
    """
    data: Dict[str, Any] = {}
    for field, headers in STUDENT_HEADERS.items():
        data[field] = _clean(find_value(row, headers))

    if data["department"]:
        data["department"] = data["department"].lower()
    if data["email"]:
        data["email"] = data["email"].lower()

    for field in ("admissionYear", "currentYear"):
        if data[field] is not None:
            data[field] = parse_int(data[field])

    data["whatsappNumber"] = data["whatsappNumber"] or ""

    missing = [field for field in REQUIRED_STUDENT_FIELDS if not data.get(field)]
    return data, missing


def chunked(items: List[Any], size: int) -> Iterator[List[Any]]:
    """Yield successive slices of at most size items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def matches_search(record: Dict[str, Any], term: Optional[str], fields: Iterable[str]) -> bool:
    """Case-insensitive substring match of term against any of the fields."""
    if not term:
        return True
    needle = term.strip().lower()
    for field in fields:
        value = record.get(field)
        if value and needle in str(value).lower():
            return True
    return False
