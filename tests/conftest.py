"""
Pytest configuration and fixtures
"""
import pytest
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from civictrack.core.geo_utils import GeoPoint
from civictrack.database import DatabaseConnection, SqlAlchemyIssueRepository
from civictrack.issues.events import InMemoryEventDispatcher
from civictrack.issues.models import Actor, ReporterProfile, Role
from civictrack.issues.repository import InMemoryIssueRepository

# New York City Hall
HOME = GeoPoint(40.7128, -74.0060)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


def make_payload(**overrides):
    """Valid submission payload about 1 km from HOME."""
    payload = {
        "title": "Pothole on Main Street",
        "description": "Large pothole near the crosswalk causing cars to swerve",
        "category": "infrastructure",
        "priority": "high",
        "location": {
            "latitude": 40.7200,
            "longitude": -74.0000,
            "address": "123 Main Street, New York, NY",
        },
        "is_anonymous": False,
    }
    payload.update(overrides)
    return payload


def make_profile(**overrides):
    values = {
        "id": "reporter-1",
        "registered_location": HOME,
        "preferred_radius_km": 5.0,
        "role": Role.USER,
        "is_banned": False,
    }
    values.update(overrides)
    return ReporterProfile(**values)


@pytest.fixture
def home():
    return HOME


@pytest.fixture
def profile():
    """Reporter living at NYC City Hall with a 5 km radius."""
    return make_profile()


@pytest.fixture
def payload():
    return make_payload()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def dispatcher():
    return InMemoryEventDispatcher()


@pytest.fixture
def user():
    return Actor("user-1", Role.USER)


@pytest.fixture
def admin():
    return Actor("admin-1", Role.ADMIN)


@pytest.fixture
def db(tmp_path):
    """File-backed SQLite database with all tables created."""
    connection = DatabaseConnection(f"sqlite:///{tmp_path / 'civictrack.db'}")
    connection.create_tables()
    yield connection
    connection.close()


@pytest.fixture(params=["memory", "sqlalchemy"])
def repository(request):
    """Every issue store implementation."""
    if request.param == "memory":
        yield InMemoryIssueRepository()
    else:
        yield SqlAlchemyIssueRepository(request.getfixturevalue("db"))
