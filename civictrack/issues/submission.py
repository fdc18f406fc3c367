"""
Issue submission with geofence enforcement.

Reporters may only submit issues located within their effective radius:
the smaller of their preferred radius and the system-wide maximum, measured
from their registered home location.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from civictrack.core.config import settings
from civictrack.core.constants import ANONYMOUS_ACTOR
from civictrack.core.errors import GeofenceViolation, PreconditionError
from civictrack.core.geo_utils import distance_km, format_coordinates, validate_point
from civictrack.issues.events import (
    EventDispatcher,
    IssueEvent,
    IssueEventType,
    NullEventDispatcher,
    safe_dispatch,
)
from civictrack.issues.models import (
    FlagSet,
    IssueRecord,
    ReporterProfile,
    VoteSet,
    new_id,
    utcnow,
)
from civictrack.issues.repository import IssueRepository
from civictrack.issues.validation import validate_issue_payload
from civictrack.issues.workflow import INITIAL_STATUS, StatusWorkflow

logger = logging.getLogger(__name__)


class SubmissionService:
    """Validates and persists new issue reports."""

    def __init__(
        self,
        repository: IssueRepository,
        dispatcher: Optional[EventDispatcher] = None,
        system_max_radius_km: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize submission service.

        Args:
            repository: Issue store
            dispatcher: Receiver of issue_created events
            system_max_radius_km: Hard cap on any reporter's radius
                (default from settings)
            clock: Timestamp source
        """
        max_radius = system_max_radius_km if system_max_radius_km is not None else settings.system_max_radius_km
        if max_radius <= 0:
            raise ValueError("system_max_radius_km must be positive")

        self.repository = repository
        self.dispatcher = dispatcher or NullEventDispatcher()
        self.system_max_radius_km = max_radius
        self.clock = clock

        logger.info(f"SubmissionService initialized (max radius {max_radius:g} km)")

    def effective_radius(self, profile: ReporterProfile) -> float:
        """Radius actually enforced for ``profile``; the system cap always wins."""
        return min(profile.preferred_radius_km, self.system_max_radius_km)

    def create_issue(self, profile: ReporterProfile, payload: Mapping[str, Any]) -> IssueRecord:
        """
        Create a new issue report.

        Args:
            profile: Verified reporter profile
            payload: Submission fields (title, description, category,
                priority, location, is_anonymous)

        Returns:
            Persisted IssueRecord in REPORTED status

        Raises:
            ValidationError: every invalid field, aggregated
            PreconditionError: reporter banned or home location not set
            GeofenceViolation: issue outside the effective radius
        """
        draft = validate_issue_payload(payload, profile)

        if profile.is_banned:
            logger.warning(f"Banned reporter {profile.id} attempted a submission")
            raise PreconditionError("ReporterBanned", "Reporter is banned from submitting issues")

        if profile.registered_location is None:
            raise PreconditionError(
                "LocationNotSet", "Reporter must set a default location before reporting issues"
            )
        home = validate_point(profile.registered_location, field="registered_location")

        radius = self.effective_radius(profile)
        distance = distance_km(home, draft.location.point)
        where = format_coordinates(draft.location.latitude, draft.location.longitude)

        if distance > radius:
            logger.warning(
                f"Geofence violation by {profile.id} at ({where}): "
                f"{distance:.2f} km > {radius:g} km"
            )
            raise GeofenceViolation(
                distance=distance,
                effective_radius=radius,
                reporter_location=home,
                issue_location=draft.location.point,
            )

        now = self.clock()
        reporter_id = None if draft.is_anonymous else profile.id

        record = IssueRecord(
            id=new_id(),
            title=draft.title,
            description=draft.description,
            category=draft.category,
            location=draft.location,
            reporter_id=reporter_id,
            is_anonymous=draft.is_anonymous,
            status=INITIAL_STATUS,
            priority=draft.priority,
            status_history=[StatusWorkflow.initial_event(reporter_id or ANONYMOUS_ACTOR, now)],
            flags=FlagSet(),
            is_hidden=False,
            votes=VoteSet(),
            created_at=now,
            updated_at=now,
            resolved_at=None,
        )

        created = self.repository.create(record)

        logger.info(
            f"New issue created: {created.id} at ({where}), "
            f"{distance:.2f} km from reporter home"
        )

        safe_dispatch(self.dispatcher, IssueEvent(
            type=IssueEventType.ISSUE_CREATED,
            issue_id=created.id,
            occurred_at=now,
            payload={
                "category": created.category.value,
                "priority": created.priority.value,
                "reporter_id": created.reporter_id,
                "location": created.location.to_dict(),
            },
        ))

        return created
