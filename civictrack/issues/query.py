"""
Read path: filtered, paginated issue listings.
"""

import logging
from typing import Any, List, Mapping, Optional, Union
from dataclasses import dataclass

from civictrack.core.config import settings
from civictrack.core.constants import ANONYMOUS_ACTOR
from civictrack.core.errors import FieldViolation, NotFound, PermissionDenied, ValidationError
from civictrack.core.geo_utils import GeoPoint, is_valid_coordinates
from civictrack.issues.models import (
    Actor,
    IssueCategory,
    IssuePriority,
    IssueRecord,
    IssueStatus,
)
from civictrack.issues.repository import IssueQuery, IssueRepository, Page
from civictrack.issues.validation import parse_enum

logger = logging.getLogger(__name__)


@dataclass
class IssueFilters:
    """Caller-facing listing filters."""
    category: Optional[Union[IssueCategory, str]] = None
    status: Optional[Union[IssueStatus, str]] = None
    priority: Optional[Union[IssuePriority, str]] = None
    search: Optional[str] = None
    center: Optional[GeoPoint] = None
    radius_km: Optional[float] = None
    reporter_id: Optional[str] = None
    flagged_only: bool = False
    page: int = 1
    page_size: Optional[int] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IssueFilters":
        """Build filters from loose key/value input, treating 'all' as unset."""
        def clean(key: str) -> Any:
            value = data.get(key)
            if value in ("", "all", "undefined"):
                return None
            return value

        center = None
        latitude, longitude = data.get("latitude"), data.get("longitude")
        if latitude is not None and longitude is not None:
            center = GeoPoint(latitude=latitude, longitude=longitude)

        return cls(
            category=clean("category"),
            status=clean("status"),
            priority=clean("priority"),
            search=clean("search"),
            center=center,
            radius_km=data.get("radius_km"),
            reporter_id=clean("reporter_id"),
            flagged_only=_truthy(data.get("flagged_only")),
            page=data.get("page", 1),
            page_size=data.get("page_size"),
        )


class QueryService:
    """
    Lists issues newest first.

    Hidden issues are visible only to admins. Radius filtering uses the same
    great-circle test as the submission geofence.
    """

    def __init__(
        self,
        repository: IssueRepository,
        default_page_size: Optional[int] = None,
        max_page_size: Optional[int] = None
    ):
        self.repository = repository
        self.default_page_size = default_page_size or settings.default_page_size
        self.max_page_size = max_page_size or settings.max_page_size

    def list(self, filters: Optional[IssueFilters] = None, viewer: Optional[Actor] = None) -> Page[IssueRecord]:
        """
        List issues matching ``filters``.

        Args:
            filters: Listing filters (defaults to everything, first page)
            viewer: Caller; admins also see hidden issues

        Returns:
            Page of IssueRecord ordered by created_at descending

        Raises:
            PermissionDenied: flagged-only listing requested by a non-admin
            ValidationError: unknown enum values, bad coordinates or paging
        """
        criteria = self.build_query(filters or IssueFilters(), viewer)
        page = self.repository.query(criteria)

        logger.debug(f"Listed {len(page.items)} of {page.total} issues (page {page.page})")
        return page

    def get(self, issue_id: str, viewer: Optional[Actor] = None) -> IssueRecord:
        """Fetch one issue. Hidden issues do not exist for non-admins."""
        record = self.repository.find_by_id(issue_id)
        if record is None or (record.is_hidden and not _is_admin(viewer)):
            raise NotFound(issue_id)
        return record

    def build_query(self, filters: IssueFilters, viewer: Optional[Actor]) -> IssueQuery:
        """
        Validate filters and translate them into a store query.

        Raises:
            PermissionDenied: flagged-only listing requested by a non-admin
            ValidationError: unknown enum values, bad coordinates or paging
        """
        if filters.flagged_only and not _is_admin(viewer):
            actor_id = viewer.actor_id if viewer else ANONYMOUS_ACTOR
            logger.warning(f"Actor {actor_id} denied: list flagged issues")
            raise PermissionDenied(actor_id, "list flagged issues")

        violations: List[FieldViolation] = []

        category = self._enum(filters.category, IssueCategory, "category", violations)
        status = self._enum(filters.status, IssueStatus, "status", violations)
        priority = self._enum(filters.priority, IssuePriority, "priority", violations)

        page = filters.page
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            violations.append(FieldViolation("page", "Page must be a positive integer", page))
            page = 1

        page_size = filters.page_size if filters.page_size is not None else self.default_page_size
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
            violations.append(FieldViolation("page_size", "Page size must be a positive integer", page_size))
            page_size = self.default_page_size
        page_size = min(page_size, self.max_page_size)

        center, radius = filters.center, filters.radius_km
        if (center is None) != (radius is None):
            violations.append(FieldViolation(
                "radius_km", "Center and radius must be supplied together", radius
            ))
        if center is not None and not is_valid_coordinates(center.latitude, center.longitude):
            violations.append(FieldViolation("center", "Invalid center coordinates", center.to_dict()))
        if radius is not None and (isinstance(radius, bool) or not isinstance(radius, (int, float)) or radius < 0):
            violations.append(FieldViolation("radius_km", "Radius must be a non-negative number", radius))

        search = filters.search.strip() if isinstance(filters.search, str) else None

        if violations:
            raise ValidationError(violations)

        return IssueQuery(
            category=category,
            status=status,
            priority=priority,
            reporter_id=filters.reporter_id,
            search=search or None,
            center=center,
            radius_km=radius,
            include_hidden=_is_admin(viewer),
            flagged_only=filters.flagged_only,
            page=page,
            page_size=page_size,
        )

    @staticmethod
    def _enum(value, enum_cls, field_name: str, violations: List[FieldViolation]):
        if value is None:
            return None
        try:
            return parse_enum(value, enum_cls, field_name)
        except ValidationError as e:
            violations.extend(e.violations)
            return None


def _is_admin(viewer: Optional[Actor]) -> bool:
    return viewer is not None and viewer.is_admin


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return value is True
