"""
CivicTrack - Error Taxonomy
Typed errors raised by the submission and moderation engine.

Every error carries a stable ``code`` and serializes with ``to_dict()`` so
that callers (HTTP layer, notification subscribers) never need to parse
messages.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from civictrack.core.geo_utils import GeoPoint


class CivicTrackError(Exception):
    """Base class for all engine errors."""

    code = "civictrack_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details(),
        }


@dataclass(frozen=True)
class FieldViolation:
    """A single user-correctable problem with an input field."""
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message, "value": self.value}


class ValidationError(CivicTrackError):
    """One or more input fields are invalid. Violations are aggregated."""

    code = "validation_error"

    def __init__(self, violations: List[FieldViolation], message: Optional[str] = None):
        self.violations = list(violations)
        if message is None:
            fields = ", ".join(v.field for v in self.violations)
            message = f"Invalid input: {fields}" if fields else "Invalid input"
        super().__init__(message)

    @property
    def fields(self) -> List[str]:
        return [v.field for v in self.violations]

    def details(self) -> Dict[str, Any]:
        return {"violations": [v.to_dict() for v in self.violations]}


class InvalidCoordinate(ValidationError):
    """Latitude or longitude outside the valid range."""

    code = "invalid_coordinate"

    def __init__(self, latitude: Any, longitude: Any, field: str = "location"):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            [FieldViolation(
                field=field,
                message="Latitude must be between -90 and 90 and longitude between -180 and 180",
                value={"latitude": latitude, "longitude": longitude},
            )],
            message=f"Invalid coordinates ({latitude}, {longitude})",
        )


class PreconditionError(CivicTrackError):
    """The caller's state does not allow the operation (e.g. no home location)."""

    code = "precondition_failed"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)

    def details(self) -> Dict[str, Any]:
        return {"reason": self.reason}


class GeofenceViolation(CivicTrackError):
    """The issue lies outside the reporter's effective radius."""

    code = "geofence_violation"

    def __init__(
        self,
        distance: float,
        effective_radius: float,
        reporter_location: "GeoPoint",
        issue_location: "GeoPoint",
    ):
        self.distance = distance
        self.effective_radius = effective_radius
        self.reporter_location = reporter_location
        self.issue_location = issue_location
        super().__init__(
            f"Issue location is {distance:.2f}km away from your location. "
            f"You can only report issues within {effective_radius:g}km radius."
        )

    def details(self) -> Dict[str, Any]:
        return {
            "distance": round(self.distance, 2),
            "effective_radius": self.effective_radius,
            "reporter_location": self.reporter_location.to_dict(),
            "issue_location": self.issue_location.to_dict(),
        }


class InvalidTransition(CivicTrackError):
    """The requested status change is not an edge of the workflow graph."""

    code = "invalid_transition"

    def __init__(self, from_status: Any, to_status: Any, message: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot change status from {_value(from_status)} to {_value(to_status)}"
        )

    def details(self) -> Dict[str, Any]:
        return {"from_status": _value(self.from_status), "to_status": _value(self.to_status)}


class DuplicateFlag(CivicTrackError):
    """The flagger has already flagged this issue."""

    code = "duplicate_flag"

    def __init__(self, issue_id: str, flagger_id: str):
        self.issue_id = issue_id
        self.flagger_id = flagger_id
        super().__init__(f"Issue {issue_id} already flagged by {flagger_id}")

    def details(self) -> Dict[str, Any]:
        return {"issue_id": self.issue_id, "flagger_id": self.flagger_id}


class PermissionDenied(CivicTrackError):
    """The actor's role does not allow the operation."""

    code = "permission_denied"

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Actor {actor_id} is not allowed to {action}")

    def details(self) -> Dict[str, Any]:
        return {"actor_id": self.actor_id, "action": self.action}


class NotFound(CivicTrackError):
    """No issue with the given id."""

    code = "not_found"

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Issue {issue_id} not found")

    def details(self) -> Dict[str, Any]:
        return {"issue_id": self.issue_id}


class ConcurrencyConflict(CivicTrackError):
    """Concurrent writers kept invalidating the update; the caller may retry."""

    code = "concurrency_conflict"
    retryable = True

    def __init__(self, issue_id: str, attempts: int):
        self.issue_id = issue_id
        self.attempts = attempts
        super().__init__(f"Issue {issue_id} was modified concurrently ({attempts} attempts)")

    def details(self) -> Dict[str, Any]:
        return {"issue_id": self.issue_id, "attempts": self.attempts}


class InfrastructureError(CivicTrackError):
    """The persistence store is unavailable or failed."""

    code = "infrastructure_error"
    retryable = True


def _value(status: Any) -> Any:
    return getattr(status, "value", status)
