"""
Tests for geofenced issue submission
"""
import pytest

from civictrack.core.errors import GeofenceViolation, InvalidCoordinate, PreconditionError, ValidationError
from civictrack.core.geo_utils import GeoPoint, distance_km
from civictrack.issues.events import InMemoryEventDispatcher, IssueEventType
from civictrack.issues.models import IssueCategory, IssuePriority, IssueStatus
from civictrack.issues.repository import InMemoryIssueRepository
from civictrack.issues.submission import SubmissionService

from conftest import HOME, StepClock, make_payload, make_profile


def location(latitude, longitude, address="Somewhere in the city"):
    return {"latitude": latitude, "longitude": longitude, "address": address}


class TestSubmissionService:
    """Test suite for SubmissionService."""

    def setup_method(self):
        """Setup test fixtures."""
        self.repository = InMemoryIssueRepository()
        self.dispatcher = InMemoryEventDispatcher()
        self.clock = StepClock()
        self.service = SubmissionService(
            self.repository, self.dispatcher, system_max_radius_km=5.0, clock=self.clock
        )

    def test_create_issue_within_radius(self):
        issue = self.service.create_issue(make_profile(), make_payload())

        assert issue.status == IssueStatus.REPORTED
        assert issue.category == IssueCategory.INFRASTRUCTURE
        assert issue.priority == IssuePriority.HIGH
        assert issue.reporter_id == "reporter-1"
        assert issue.flag_count == 0
        assert issue.is_hidden is False
        assert issue.resolved_at is None
        assert issue.created_at == issue.updated_at

    def test_initial_history_entry(self):
        issue = self.service.create_issue(make_profile(), make_payload())

        assert len(issue.status_history) == 1
        event = issue.status_history[0]
        assert event.from_status is None
        assert event.to_status == IssueStatus.REPORTED
        assert event.changed_by == "reporter-1"
        assert event.timestamp == issue.created_at

    def test_issue_is_persisted(self):
        issue = self.service.create_issue(make_profile(), make_payload())

        stored = self.repository.find_by_id(issue.id)
        assert stored is not None
        assert stored.to_dict() == issue.to_dict()

    def test_text_fields_are_trimmed(self):
        issue = self.service.create_issue(
            make_profile(), make_payload(title="   Broken streetlight   ")
        )
        assert issue.title == "Broken streetlight"

    def test_priority_defaults_to_medium(self):
        payload = make_payload()
        del payload["priority"]
        issue = self.service.create_issue(make_profile(), payload)
        assert issue.priority == IssuePriority.MEDIUM

    def test_issue_created_event(self):
        issue = self.service.create_issue(make_profile(), make_payload())

        events = self.dispatcher.of_type(IssueEventType.ISSUE_CREATED)
        assert len(events) == 1
        assert events[0].issue_id == issue.id
        assert events[0].payload["category"] == "infrastructure"

    def test_outside_radius_about_22km(self):
        """A point 0.2 degrees north is ~22 km away."""
        payload = make_payload(location=location(40.9128, -74.0060))

        with pytest.raises(GeofenceViolation) as exc_info:
            self.service.create_issue(make_profile(), payload)

        error = exc_info.value
        assert error.distance == pytest.approx(22.24, abs=0.1)
        assert error.effective_radius == 5.0
        assert error.reporter_location == HOME
        assert error.issue_location == GeoPoint(40.9128, -74.0060)
        assert len(self.repository) == 0

    def test_outside_radius_reports_exact_distance(self):
        target = GeoPoint(40.9, -74.9)
        payload = make_payload(location=location(target.latitude, target.longitude))

        with pytest.raises(GeofenceViolation) as exc_info:
            self.service.create_issue(make_profile(), payload)

        assert exc_info.value.distance == distance_km(HOME, target)
        assert exc_info.value.distance > 70

    def test_geofence_violation_serializes(self):
        payload = make_payload(location=location(40.9128, -74.0060))

        with pytest.raises(GeofenceViolation) as exc_info:
            self.service.create_issue(make_profile(), payload)

        data = exc_info.value.to_dict()
        assert data["code"] == "geofence_violation"
        assert data["retryable"] is False
        assert data["details"]["effective_radius"] == 5.0
        assert data["details"]["reporter_location"] == {"latitude": 40.7128, "longitude": -74.0060}

    def test_system_cap_overrides_preferred_radius(self):
        """Preferred 50 km is capped by the 5 km system maximum."""
        profile = make_profile(preferred_radius_km=50.0)
        payload = make_payload(location=location(40.7800, -74.0060))  # ~7.5 km

        assert self.service.effective_radius(profile) == 5.0
        with pytest.raises(GeofenceViolation) as exc_info:
            self.service.create_issue(profile, payload)
        assert exc_info.value.effective_radius == 5.0

    def test_smaller_preferred_radius_wins(self):
        profile = make_profile(preferred_radius_km=1.0)
        payload = make_payload(location=location(40.7300, -74.0060))  # ~1.9 km

        with pytest.raises(GeofenceViolation) as exc_info:
            self.service.create_issue(profile, payload)
        assert exc_info.value.effective_radius == 1.0

    def test_issue_at_home_location(self):
        payload = make_payload(location=location(HOME.latitude, HOME.longitude))
        issue = self.service.create_issue(make_profile(), payload)
        assert issue.location.point == HOME

    def test_location_not_set(self):
        with pytest.raises(PreconditionError) as exc_info:
            self.service.create_issue(make_profile(registered_location=None), make_payload())
        assert exc_info.value.reason == "LocationNotSet"

    def test_banned_reporter(self):
        with pytest.raises(PreconditionError) as exc_info:
            self.service.create_issue(make_profile(is_banned=True), make_payload())
        assert exc_info.value.reason == "ReporterBanned"
        assert len(self.repository) == 0

    def test_invalid_home_location(self):
        profile = make_profile(registered_location=GeoPoint(95, 0))
        with pytest.raises(InvalidCoordinate):
            self.service.create_issue(profile, make_payload())

    def test_anonymous_issue(self):
        issue = self.service.create_issue(make_profile(), make_payload(is_anonymous=True))

        assert issue.is_anonymous is True
        assert issue.reporter_id is None
        assert issue.status_history[0].changed_by == "anonymous"

    def test_anonymous_issue_still_geofenced(self):
        payload = make_payload(is_anonymous=True, location=location(40.9128, -74.0060))
        with pytest.raises(GeofenceViolation):
            self.service.create_issue(make_profile(), payload)

    def test_rejects_non_positive_system_radius(self):
        with pytest.raises(ValueError):
            SubmissionService(self.repository, system_max_radius_km=0)


class TestSubmissionValidation:
    """Test suite for submission payload validation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.repository = InMemoryIssueRepository()
        self.service = SubmissionService(self.repository, system_max_radius_km=5.0)

    def create(self, profile=None, **overrides):
        return self.service.create_issue(profile or make_profile(), make_payload(**overrides))

    def test_violations_are_aggregated(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(title="short", description="too short", category="roads")

        assert set(exc_info.value.fields) == {"title", "description", "category"}
        assert len(self.repository) == 0

    def test_title_length_bounds(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(title="x" * 501)
        assert exc_info.value.fields == ["title"]

        self.create(title="x" * 10)

    def test_whitespace_only_title(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(title="             ")
        assert exc_info.value.fields == ["title"]

    def test_description_length_bounds(self):
        with pytest.raises(ValidationError):
            self.create(description="d" * 2001)

        self.create(description="d" * 20)

    def test_missing_category(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(category=None)
        assert exc_info.value.fields == ["category"]

    def test_unknown_priority(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(priority="urgent")
        assert exc_info.value.fields == ["priority"]

    def test_missing_location(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(location=None)
        assert exc_info.value.fields == ["location"]

    def test_out_of_range_coordinates(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(location=location(91, 0))
        assert "location" in exc_info.value.fields

    def test_missing_address(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(location={"latitude": 40.72, "longitude": -74.0})
        assert exc_info.value.fields == ["location.address"]

    def test_address_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(location=location(40.72, -74.0, address="a" * 501))
        assert exc_info.value.fields == ["location.address"]

    def test_preferred_radius_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(profile=make_profile(preferred_radius_km=0.5))
        assert exc_info.value.fields == ["preferred_radius_km"]

        with pytest.raises(ValidationError):
            self.create(profile=make_profile(preferred_radius_km=51))

    def test_validation_runs_before_geofence(self):
        with pytest.raises(ValidationError):
            self.create(title="short", location=location(40.9128, -74.0060))

    def test_validation_error_serializes(self):
        with pytest.raises(ValidationError) as exc_info:
            self.create(title="short")

        data = exc_info.value.to_dict()
        assert data["code"] == "validation_error"
        assert data["details"]["violations"][0]["field"] == "title"
