"""
Tests for issue listings
"""
import pytest

from civictrack.core.errors import NotFound, PermissionDenied, ValidationError
from civictrack.core.geo_utils import GeoPoint
from civictrack.issues.engine import IssueEngine
from civictrack.issues.models import Actor, IssueStatus, Role
from civictrack.issues.query import IssueFilters
from civictrack.issues.repository import InMemoryIssueRepository

from conftest import HOME, StepClock, make_payload, make_profile

USER = Actor("user-1", Role.USER)
ADMIN = Actor("admin-1", Role.ADMIN)


def location(latitude, longitude, address):
    return {"latitude": latitude, "longitude": longitude, "address": address}


def seed(engine):
    """Create four issues; the last one created is the newest."""
    profile = make_profile(preferred_radius_km=5.0)
    issues = [
        engine.create_issue(profile, make_payload(
            title="Pothole on Main Street",
            category="infrastructure",
            priority="high",
            location=location(40.7200, -74.0000, "123 Main Street"),
        )),
        engine.create_issue(profile, make_payload(
            title="Overflowing trash bins",
            description="Trash bins in the park have not been emptied for a week",
            category="environment",
            priority="low",
            location=location(40.7130, -74.0050, "City Hall Park"),
        )),
        engine.create_issue(profile, make_payload(
            title="Broken streetlight",
            description="Streetlight flickering all night near the school entrance",
            category="safety",
            priority="medium",
            location=location(40.7450, -74.0060, "500 Broadway"),  # ~3.6 km north
        )),
        engine.create_issue(make_profile(id="reporter-2"), make_payload(
            title="Water main leak",
            description="Water bubbling up through the asphalt on Main Street",
            category="utilities",
            priority="critical",
            location=location(40.7128, -74.0060, "City Hall"),
        )),
    ]
    return issues


@pytest.fixture
def engine(repository):
    return IssueEngine(repository, clock=StepClock())


@pytest.fixture
def issues(engine):
    return seed(engine)


class TestListIssues:
    """Test suite for list_issues on every store."""

    def test_newest_first(self, engine, issues):
        page = engine.list_issues()

        assert [i.id for i in page.items] == [i.id for i in reversed(issues)]
        assert page.total == 4

    def test_filter_by_category(self, engine, issues):
        page = engine.list_issues(IssueFilters(category="environment"))
        assert [i.id for i in page.items] == [issues[1].id]

    def test_filter_by_priority(self, engine, issues):
        page = engine.list_issues(IssueFilters(priority="critical"))
        assert [i.id for i in page.items] == [issues[3].id]

    def test_filter_by_status(self, engine, issues):
        engine.transition_status(issues[0].id, IssueStatus.IN_REVIEW, USER)

        page = engine.list_issues(IssueFilters(status="in_review"))
        assert [i.id for i in page.items] == [issues[0].id]

    def test_filter_by_reporter(self, engine, issues):
        page = engine.list_issues(IssueFilters(reporter_id="reporter-2"))
        assert [i.id for i in page.items] == [issues[3].id]

    def test_search_is_case_insensitive(self, engine, issues):
        page = engine.list_issues(IssueFilters(search="MAIN street"))
        assert {i.id for i in page.items} == {issues[0].id, issues[3].id}

    def test_search_matches_address(self, engine, issues):
        page = engine.list_issues(IssueFilters(search="broadway"))
        assert [i.id for i in page.items] == [issues[2].id]

    def test_search_treats_wildcards_literally(self, engine, issues):
        page = engine.list_issues(IssueFilters(search="%"))
        assert page.total == 0

    def test_search_folds_non_ascii_text(self, engine, issues):
        street = engine.create_issue(make_profile(), make_payload(
            title="Straße beschädigt an der Kreuzung",
            description="Éclairage public en panne devant l'école primaire",
        ))

        assert [i.id for i in engine.list_issues(IssueFilters(search="STRASSE")).items] == [street.id]
        assert [i.id for i in engine.list_issues(IssueFilters(search="éCLAIRAGE")).items] == [street.id]

    def test_radius_filter(self, engine, issues):
        page = engine.list_issues(IssueFilters(center=HOME, radius_km=2.0))

        assert {i.id for i in page.items} == {issues[0].id, issues[1].id, issues[3].id}
        assert page.total == 3

    def test_radius_across_pole(self, engine):
        polar = GeoPoint(89.99, 0)
        profile = make_profile(registered_location=polar)
        across = engine.create_issue(profile, make_payload(location=location(89.99, 180.0, "Across the pole")))
        near = engine.create_issue(profile, make_payload(location=location(89.98, 0.0, "Same meridian")))

        page = engine.list_issues(IssueFilters(center=polar, radius_km=5.0))

        assert [i.id for i in page.items] == [near.id, across.id]
        assert page.total == 2

    def test_zero_radius_matches_exact_point(self, engine, issues):
        page = engine.list_issues(IssueFilters(center=HOME, radius_km=0))
        assert [i.id for i in page.items] == [issues[3].id]

    def test_combined_filters(self, engine, issues):
        page = engine.list_issues(IssueFilters(center=HOME, radius_km=2.0, search="main"))
        assert [i.id for i in page.items] == [issues[3].id, issues[0].id]

    def test_pagination(self, engine, issues):
        first = engine.list_issues(IssueFilters(page=1, page_size=3))
        second = engine.list_issues(IssueFilters(page=2, page_size=3))

        assert len(first.items) == 3
        assert len(second.items) == 1
        assert first.total == second.total == 4
        assert first.total_pages == 2
        assert first.has_next and not first.has_prev
        assert second.has_prev and not second.has_next
        assert second.items[0].id == issues[0].id

    def test_pagination_with_radius(self, engine, issues):
        page = engine.list_issues(IssueFilters(center=HOME, radius_km=2.0, page=2, page_size=2))

        assert page.total == 3
        assert [i.id for i in page.items] == [issues[0].id]

    def test_page_past_end_is_empty(self, engine, issues):
        page = engine.list_issues(IssueFilters(page=5, page_size=10))
        assert page.items == []
        assert page.total == 4

    def test_hidden_issues_only_for_admin(self, engine, issues):
        for i in range(3):
            engine.flag_issue(issues[0].id, f"flagger-{i}", "Spam")

        public = engine.list_issues(viewer=USER)
        admin = engine.list_issues(viewer=ADMIN)

        assert issues[0].id not in {i.id for i in public.items}
        assert public.total == 3
        assert issues[0].id in {i.id for i in admin.items}
        assert admin.total == 4

    def test_get_hidden_issue(self, engine, issues):
        for i in range(3):
            engine.flag_issue(issues[0].id, f"flagger-{i}", "Spam")

        with pytest.raises(NotFound):
            engine.get_issue(issues[0].id, USER)
        assert engine.get_issue(issues[0].id, ADMIN).is_hidden is True

    def test_flagged_only_for_admin(self, engine, issues):
        for i in range(3):
            engine.flag_issue(issues[0].id, f"flagger-{i}", "Spam")
        engine.flag_issue(issues[2].id, "flagger-1", "Duplicate report")

        page = engine.list_issues(IssueFilters(flagged_only=True), ADMIN)

        assert [i.id for i in page.items] == [issues[2].id, issues[0].id]
        assert page.items[1].is_hidden is True
        assert engine.list_flagged(ADMIN, page_size=1).total == 2

    def test_flagged_only_denied_for_users(self, engine, issues):
        with pytest.raises(PermissionDenied):
            engine.list_issues(IssueFilters(flagged_only=True), USER)
        with pytest.raises(PermissionDenied):
            engine.list_flagged(USER)
        with pytest.raises(PermissionDenied):
            engine.list_issues(IssueFilters(flagged_only=True))

    def test_flagged_queue_after_clear(self, engine, issues):
        engine.flag_issue(issues[1].id, "flagger-1", "Spam")
        engine.clear_flags(issues[1].id, ADMIN)

        assert engine.list_flagged(ADMIN).total == 0

    def test_get_issue(self, engine, issues):
        issue = engine.get_issue(issues[2].id)
        assert issue.title == "Broken streetlight"

    def test_get_missing_issue(self, engine, issues):
        with pytest.raises(NotFound):
            engine.get_issue("missing")


class TestFilterValidation:
    """Test suite for listing filter validation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.engine = IssueEngine(InMemoryIssueRepository())

    def test_unknown_enum_values_aggregated(self):
        with pytest.raises(ValidationError) as exc_info:
            self.engine.list_issues(IssueFilters(category="roads", status="done"))
        assert set(exc_info.value.fields) == {"category", "status"}

    def test_radius_without_center(self):
        with pytest.raises(ValidationError) as exc_info:
            self.engine.list_issues(IssueFilters(radius_km=5))
        assert exc_info.value.fields == ["radius_km"]

    def test_invalid_center(self):
        with pytest.raises(ValidationError) as exc_info:
            self.engine.list_issues(IssueFilters(center=GeoPoint(100, 0), radius_km=5))
        assert exc_info.value.fields == ["center"]

    def test_negative_radius(self):
        with pytest.raises(ValidationError):
            self.engine.list_issues(IssueFilters(center=HOME, radius_km=-1))

    def test_invalid_page(self):
        with pytest.raises(ValidationError) as exc_info:
            self.engine.list_issues(IssueFilters(page=0))
        assert exc_info.value.fields == ["page"]

    def test_page_size_clamped(self):
        page = self.engine.list_issues(IssueFilters(page_size=1000))
        assert page.page_size == 100

    def test_default_page_size(self):
        assert self.engine.list_issues().page_size == 10


class TestIssueFilters:
    """Test suite for building filters from loose input."""

    def test_all_means_unset(self):
        filters = IssueFilters.from_mapping({"category": "all", "status": "", "priority": "undefined"})
        assert filters.category is None
        assert filters.status is None
        assert filters.priority is None

    def test_coordinates_become_center(self):
        filters = IssueFilters.from_mapping({"latitude": 40.7, "longitude": -74.0, "radius_km": 3})
        assert filters.center == GeoPoint(40.7, -74.0)
        assert filters.radius_km == 3

    def test_defaults(self):
        filters = IssueFilters.from_mapping({})
        assert filters.page == 1
        assert filters.center is None

    def test_flagged_only(self):
        assert IssueFilters.from_mapping({"flagged_only": "true"}).flagged_only is True
        assert IssueFilters.from_mapping({"flagged_only": True}).flagged_only is True
        assert IssueFilters.from_mapping({"flagged_only": "false"}).flagged_only is False
        assert IssueFilters.from_mapping({}).flagged_only is False
