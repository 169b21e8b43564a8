"""
Integration test fixtures and configuration

These tests talk to a real Firebase project (Firestore and Auth).
They are slower and require service account credentials.

Run integration tests with: pytest tests/integration -m integration
Skip integration tests with: pytest -m "not integration"
"""

import pytest
import os
from pathlib import Path

# Add backend to path for imports
import sys
backend_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(backend_dir))


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may be slow, requires network)"
    )
    config.addinivalue_line(
        "markers", "firebase: marks tests that require Firebase connection"
    )


def firebase_configured() -> bool:
    """Check if a service account key is available"""
    env_path = backend_dir / ".env"
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)

    key_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH")
    if not key_path:
        return False

    full_path = Path(key_path)
    if not full_path.is_absolute():
        full_path = backend_dir / key_path
    return full_path.exists()


@pytest.fixture
def firebase_available():
    return firebase_configured()


@pytest.fixture
def firestore_db():
    """Initialized Firestore client, or skip"""
    if not firebase_configured():
        pytest.skip("Firebase credentials not available")

    from core.config import initialize_firebase, get_firestore_client
    initialize_firebase()
    return get_firestore_client()
