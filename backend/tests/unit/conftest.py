"""
Unit test fixtures
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))

from core.auth import AuthenticatedUser  # noqa: E402
from core.constants import UserRole  # noqa: E402


@pytest.fixture
def make_doc():
    """Factory for fake Firestore document snapshots"""
    def _make(doc_id, data=None):
        doc = MagicMock()
        doc.id = doc_id
        doc.exists = data is not None
        doc.to_dict.return_value = dict(data) if data is not None else None
        doc.reference = MagicMock(name=f"ref:{doc_id}")
        return doc
    return _make


@pytest.fixture
def make_user():
    """Factory for authenticated users of any role"""
    def _make(role=UserRole.STUDENT, profile_id="user1", name="Test User", status="active"):
        return AuthenticatedUser(
            uid=profile_id,
            email=f"{profile_id}@example.com",
            role=UserRole(role),
            profile_id=profile_id,
            name=name,
            status=status,
        )
    return _make


@pytest.fixture
def mock_activity():
    """Activity logger that records calls without touching Firestore"""
    return MagicMock()


@pytest.fixture
def sample_batch():
    """A batch running Monday/Wednesday mornings in early 2025"""
    return {
        "id": "batch1",
        "name": "Aptitude Foundations",
        "topic": "Quantitative Aptitude",
        "departments": ["cse", "ece"],
        "startDate": "2025-01-01",
        "endDate": "2025-03-31",
        "daysOfWeek": ["Monday", "Wednesday"],
        "startTime": "10:00",
        "endTime": "12:00",
        "roomNumber": "A-101",
        "teacherIds": ["teacher1"],
        "studentIds": ["student1"],
        "status": "Ongoing",
    }


@pytest.fixture
def sample_student():
    """An active third year CSE student"""
    return {
        "uid": "student2",
        "studentId": "AEC/2022/0002",
        "name": "Priya Ghosh",
        "email": "priya@example.com",
        "department": "cse",
        "currentYear": 3,
        "status": "active",
        "batchIds": [],
    }
