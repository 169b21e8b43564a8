"""
E2E test fixtures and configuration

These tests drive the real FastAPI app through TestClient:
- Routing, request validation and response shapes
- Role gating by the auth dependencies
- Mapping of service errors to HTTP responses

Firebase is mocked at the boundary. Signed-in users and services are
swapped in through app.dependency_overrides.

Run e2e tests with: pytest tests/e2e -m e2e
"""

import pytest
import sys
import time
from pathlib import Path
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

# Add backend to path for imports
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))

from fastapi.testclient import TestClient  # noqa: E402

from core.auth import AuthenticatedUser, get_current_user  # noqa: E402
from core.constants import UserRole  # noqa: E402


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end tests (full app, mocked Firebase)"
    )


class Timer:
    """Simple timer for measuring execution time"""

    def __init__(self):
        self.start_time = None
        self.end_time = None
        self.elapsed_ms = None

    def start(self):
        self.start_time = time.perf_counter()
        return self

    def stop(self):
        self.end_time = time.perf_counter()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000
        return self.elapsed_ms

    @contextmanager
    def measure(self, label: str = ""):
        """Context manager for timing a block of code"""
        self.start()
        yield self
        elapsed = self.stop()
        if label:
            print(f"\n  [{label}] {elapsed:.2f}ms")


@pytest.fixture
def timer():
    """Provide a timer instance for tests"""
    return Timer()


@pytest.fixture
def timed_request(timer):
    """Factory for making timed HTTP requests"""
    def _timed_request(client, method: str, url: str, **kwargs):
        timer.start()
        response = client.request(method.upper(), url, **kwargs)
        elapsed = timer.stop()
        print(f"\n  [{method.upper()} {url}] {elapsed:.2f}ms - Status: {response.status_code}")
        return response, elapsed
    return _timed_request


@pytest.fixture
def mock_db():
    """Firestore client handed to the health check"""
    return MagicMock()


@pytest.fixture
def app_client(mock_db):
    """
    Run the real FastAPI app with Firebase and Redis mocked out.

    Yields (client, app). Dependency overrides are cleared afterwards.
    """
    cache = MagicMock()
    cache.is_connected = False

    with patch('server.initialize_firebase'), \
            patch('server.get_firestore_client', return_value=mock_db), \
            patch('services.cache.get_cache', return_value=cache):
        from server import app
        app.state.enable_scheduler = False

        with TestClient(app) as client:
            yield client, app

        app.dependency_overrides.clear()


@pytest.fixture
def client(app_client):
    return app_client[0]


@pytest.fixture
def login(app_client):
    """
    Sign in as a user of the given role.

    Only get_current_user is replaced, so the role checks built on it
    still run.
    """
    _, app = app_client

    def _login(role=UserRole.STUDENT, profile_id="user1", name="Test User"):
        user = AuthenticatedUser(
            uid=profile_id,
            email=f"{profile_id}@example.com",
            role=UserRole(role),
            profile_id=profile_id,
            name=name,
            status="active",
        )
        app.dependency_overrides[get_current_user] = lambda: user
        return user
    return _login


@pytest.fixture
def use_service(app_client):
    """Replace a get_x_service dependency with a mock service"""
    _, app = app_client

    def _use(getter, service=None):
        service = service if service is not None else MagicMock()
        app.dependency_overrides[getter] = lambda: service
        return service
    return _use


@pytest.fixture
def batch_payload():
    """A valid batch creation body"""
    return {
        "name": "Aptitude Foundations",
        "topic": "Quantitative Aptitude",
        "departments": ["cse", "ece"],
        "startDate": "2025-01-01",
        "endDate": "2025-03-31",
        "daysOfWeek": ["Monday", "Wednesday"],
        "startTime": "10:00",
        "endTime": "12:00",
        "roomNumber": "A-101",
    }


@pytest.fixture
def registration_payload():
    """A valid student self-registration body"""
    return {
        "studentId": "AEC/2022/0002",
        "name": "Priya Ghosh",
        "email": "priya@example.com",
        "rollNumber": "22CSE002",
        "registrationNumber": "REG22002",
        "department": "CSE",
        "section": "",
        "admissionYear": 2022,
        "currentYear": 3,
        "phoneNumber": "9000000002",
        "whatsappNumber": "",
        "password": "secret123",
    }
