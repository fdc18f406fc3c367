"""
Input validation for issue submissions and moderation requests.

Every check appends to a shared list of violations so the caller sees all
problems at once instead of the first one.
"""

import logging
import math
from typing import Any, List, Mapping, Optional, Type, TypeVar
from dataclasses import dataclass
from enum import Enum

from civictrack.core.constants import (
    ADDRESS_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    FLAG_REASON_MAX_LENGTH,
    MAX_PREFERRED_RADIUS_KM,
    MIN_PREFERRED_RADIUS_KM,
    STATUS_COMMENT_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
)
from civictrack.core.errors import FieldViolation, ValidationError
from civictrack.core.geo_utils import is_valid_coordinates
from civictrack.issues.models import (
    IssueCategory,
    IssueLocation,
    IssuePriority,
    ReporterProfile,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


@dataclass
class IssueDraft:
    """Validated, normalized submission payload."""
    title: str
    description: str
    category: IssueCategory
    priority: IssuePriority
    location: IssueLocation
    is_anonymous: bool = False


def validate_issue_payload(
    payload: Mapping[str, Any],
    profile: Optional[ReporterProfile] = None
) -> IssueDraft:
    """
    Validate a submission payload.

    Args:
        payload: Raw submission fields (title, description, category,
            priority, location{latitude, longitude, address}, is_anonymous)
        profile: Submitting reporter; its preferred radius is range-checked

    Returns:
        Normalized IssueDraft

    Raises:
        ValidationError: listing every invalid field
    """
    violations: List[FieldViolation] = []

    if not isinstance(payload, Mapping):
        raise ValidationError([FieldViolation("payload", "Payload must be an object", payload)])

    title = _check_text(payload.get("title"), "title", TITLE_MIN_LENGTH, TITLE_MAX_LENGTH, violations)
    description = _check_text(
        payload.get("description"), "description",
        DESCRIPTION_MIN_LENGTH, DESCRIPTION_MAX_LENGTH, violations
    )
    category = _check_enum(payload.get("category"), "category", IssueCategory, violations, required=True)
    priority = _check_enum(payload.get("priority"), "priority", IssuePriority, violations, required=False)
    location = _check_location(payload.get("location"), violations)

    is_anonymous = payload.get("is_anonymous", False)
    if not isinstance(is_anonymous, bool):
        violations.append(FieldViolation("is_anonymous", "Must be true or false", is_anonymous))

    if profile is not None:
        _check_preferred_radius(profile.preferred_radius_km, violations)

    if violations:
        logger.warning(f"Issue payload rejected: {[v.field for v in violations]}")
        raise ValidationError(violations)

    return IssueDraft(
        title=title,
        description=description,
        category=category,
        priority=priority or IssuePriority.MEDIUM,
        location=location,
        is_anonymous=is_anonymous,
    )


def validate_flag_reason(reason: Any) -> str:
    """Flag reasons are required and short."""
    violations: List[FieldViolation] = []
    text = _check_text(reason, "reason", 1, FLAG_REASON_MAX_LENGTH, violations)
    if violations:
        raise ValidationError(violations)
    return text


def validate_comment(comment: Any) -> Optional[str]:
    """Optional status-change comment; blank comments collapse to None."""
    if comment is None:
        return None
    if not isinstance(comment, str):
        raise ValidationError([FieldViolation("comment", "Comment must be text", comment)])
    comment = comment.strip()
    if len(comment) > STATUS_COMMENT_MAX_LENGTH:
        raise ValidationError([FieldViolation(
            "comment", f"Comment cannot exceed {STATUS_COMMENT_MAX_LENGTH} characters", len(comment)
        )])
    return comment or None


def parse_enum(value: Any, enum_cls: Type[E], field_name: str) -> E:
    """Coerce a raw value into ``enum_cls`` or raise ValidationError."""
    violations: List[FieldViolation] = []
    result = _check_enum(value, field_name, enum_cls, violations, required=True)
    if violations:
        raise ValidationError(violations)
    return result


def _check_text(
    value: Any,
    field_name: str,
    min_length: int,
    max_length: int,
    violations: List[FieldViolation]
) -> str:
    if value is None:
        violations.append(FieldViolation(field_name, f"{field_name.capitalize()} is required"))
        return ""
    if not isinstance(value, str):
        violations.append(FieldViolation(field_name, f"{field_name.capitalize()} must be text", value))
        return ""

    text = value.strip()
    if not text:
        violations.append(FieldViolation(field_name, f"{field_name.capitalize()} is required", value))
    elif len(text) < min_length:
        violations.append(FieldViolation(
            field_name, f"{field_name.capitalize()} must be at least {min_length} characters", len(text)
        ))
    elif len(text) > max_length:
        violations.append(FieldViolation(
            field_name, f"{field_name.capitalize()} cannot exceed {max_length} characters", len(text)
        ))
    return text


def _check_enum(
    value: Any,
    field_name: str,
    enum_cls: Type[E],
    violations: List[FieldViolation],
    required: bool
) -> Optional[E]:
    if value is None:
        if required:
            violations.append(FieldViolation(field_name, f"{field_name.capitalize()} is required"))
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        violations.append(FieldViolation(field_name, f"Invalid {field_name}; expected one of: {allowed}", value))
        return None


def _check_location(value: Any, violations: List[FieldViolation]) -> Optional[IssueLocation]:
    if value is None:
        violations.append(FieldViolation("location", "Location is required"))
        return None
    if isinstance(value, IssueLocation):
        value = value.to_dict()
    if not isinstance(value, Mapping):
        violations.append(FieldViolation("location", "Location must be an object", value))
        return None

    latitude = value.get("latitude")
    longitude = value.get("longitude")
    valid = True

    if latitude is None or longitude is None:
        violations.append(FieldViolation("location", "Location must include latitude and longitude", dict(value)))
        valid = False
    elif not is_valid_coordinates(latitude, longitude):
        violations.append(FieldViolation(
            "location",
            "Latitude must be between -90 and 90 and longitude between -180 and 180",
            {"latitude": latitude, "longitude": longitude},
        ))
        valid = False

    address = value.get("address")
    if not isinstance(address, str) or not address.strip():
        violations.append(FieldViolation("location.address", "Address is required", address))
        valid = False
    elif len(address.strip()) > ADDRESS_MAX_LENGTH:
        violations.append(FieldViolation(
            "location.address", f"Address cannot exceed {ADDRESS_MAX_LENGTH} characters", len(address.strip())
        ))
        valid = False

    if not valid:
        return None
    return IssueLocation(latitude=float(latitude), longitude=float(longitude), address=address.strip())


def _check_preferred_radius(radius: Any, violations: List[FieldViolation]) -> None:
    if isinstance(radius, bool) or not isinstance(radius, (int, float)) or not math.isfinite(radius) \
            or not MIN_PREFERRED_RADIUS_KM <= radius <= MAX_PREFERRED_RADIUS_KM:
        violations.append(FieldViolation(
            "preferred_radius_km",
            f"Preferred radius must be between {MIN_PREFERRED_RADIUS_KM:g} and {MAX_PREFERRED_RADIUS_KM:g} km",
            radius,
        ))
