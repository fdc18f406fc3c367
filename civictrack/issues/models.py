"""
Domain model for civic issue reports.

Plain dataclasses shared by every service and by both persistence stores.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional
from dataclasses import dataclass, field
from enum import Enum

from civictrack.core.geo_utils import GeoPoint


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every store round-trips unchanged."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class IssueStatus(str, Enum):
    """Lifecycle state of an issue."""
    REPORTED = "reported"
    IN_REVIEW = "in_review"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CLOSED = "closed"


class IssueCategory(str, Enum):
    """Closed set of issue categories."""
    INFRASTRUCTURE = "infrastructure"
    ENVIRONMENT = "environment"
    SAFETY = "safety"
    UTILITIES = "utilities"
    TRANSPORTATION = "transportation"
    HOUSING = "housing"
    HEALTH = "health"
    EDUCATION = "education"
    OTHER = "other"


class IssuePriority(str, Enum):
    """Priority level of an issue."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class VoteType(str, Enum):
    """Direction of a community vote."""
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Verified caller identity supplied by the identity layer."""
    actor_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class ReporterProfile:
    """Registered reporter with a home location and preferred report radius."""
    id: str
    registered_location: Optional[GeoPoint] = None
    preferred_radius_km: float = 5.0
    role: Role = Role.USER
    is_banned: bool = False


@dataclass(frozen=True)
class IssueLocation:
    """Issue position plus a human readable address."""
    latitude: float
    longitude: float
    address: str

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "address": self.address}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueLocation":
        return cls(latitude=data["latitude"], longitude=data["longitude"], address=data["address"])


@dataclass(frozen=True)
class StatusEvent:
    """Immutable audit-log entry for one state transition."""
    id: str
    from_status: Optional[IssueStatus]
    to_status: IssueStatus
    changed_by: str
    timestamp: datetime
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "changed_by": self.changed_by,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusEvent":
        from_status = data.get("from_status")
        return cls(
            id=data["id"],
            from_status=IssueStatus(from_status) if from_status else None,
            to_status=IssueStatus(data["to_status"]),
            changed_by=data["changed_by"],
            comment=data.get("comment"),
            timestamp=_parse_datetime(data["timestamp"]),
        )


@dataclass(frozen=True)
class FlagEntry:
    flagger_id: str
    reason: Optional[str]
    flagged_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flagger_id": self.flagger_id,
            "reason": self.reason,
            "flagged_at": self.flagged_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlagEntry":
        return cls(
            flagger_id=data["flagger_id"],
            reason=data.get("reason"),
            flagged_at=_parse_datetime(data["flagged_at"]),
        )


class FlagSet:
    """
    Set of distinct flaggers on an issue.

    Membership is keyed by flagger id, so a flagger can appear at most once
    and ``len()`` is always the flag count.
    """

    def __init__(self, entries: Optional[List[FlagEntry]] = None):
        self._entries: Dict[str, FlagEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: FlagEntry) -> None:
        """Add a flag. Raises KeyError if the flagger is already present."""
        if entry.flagger_id in self._entries:
            raise KeyError(entry.flagger_id)
        self._entries[entry.flagger_id] = entry

    def clear(self) -> None:
        self._entries.clear()

    def get(self, flagger_id: str) -> Optional[FlagEntry]:
        return self._entries.get(flagger_id)

    def entries(self) -> List[FlagEntry]:
        return list(self._entries.values())

    def __contains__(self, flagger_id: object) -> bool:
        return flagger_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlagSet):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"FlagSet({sorted(self._entries)})"


@dataclass(frozen=True)
class VoteEntry:
    voter_id: str
    vote_type: VoteType
    voted_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voter_id": self.voter_id,
            "vote_type": self.vote_type.value,
            "voted_at": self.voted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoteEntry":
        return cls(
            voter_id=data["voter_id"],
            vote_type=VoteType(data["vote_type"]),
            voted_at=_parse_datetime(data["voted_at"]),
        )


class VoteSet:
    """
    Current vote of each voter on an issue.

    A voter holds at most one vote. Casting again replaces the previous
    vote and moves the voter to the end, so entries stay in voting order.
    """

    def __init__(self, entries: Optional[List[VoteEntry]] = None):
        self._entries: Dict[str, VoteEntry] = {}
        for entry in entries or []:
            self.cast(entry)

    def cast(self, entry: VoteEntry) -> Optional[VoteType]:
        """Record a vote and return the voter's previous vote type, if any."""
        previous = self._entries.pop(entry.voter_id, None)
        self._entries[entry.voter_id] = entry
        return previous.vote_type if previous else None

    def retract(self, voter_id: str) -> Optional[VoteType]:
        previous = self._entries.pop(voter_id, None)
        return previous.vote_type if previous else None

    def vote_of(self, voter_id: str) -> Optional[VoteType]:
        entry = self._entries.get(voter_id)
        return entry.vote_type if entry else None

    def count(self, vote_type: VoteType) -> int:
        return sum(1 for entry in self._entries.values() if entry.vote_type == vote_type)

    def entries(self) -> List[VoteEntry]:
        return list(self._entries.values())

    def __contains__(self, voter_id: object) -> bool:
        return voter_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VoteSet):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"VoteSet({len(self._entries)} votes)"


@dataclass
class IssueRecord:
    """
    Civic issue reported by a community member.

    Mutated only through StatusWorkflow and ModerationService, always inside
    a repository update.
    """
    id: str
    title: str
    description: str
    category: IssueCategory
    location: IssueLocation

    # Reporter
    reporter_id: Optional[str] = None
    is_anonymous: bool = False

    # Workflow
    status: IssueStatus = IssueStatus.REPORTED
    priority: IssuePriority = IssuePriority.MEDIUM
    status_history: List[StatusEvent] = field(default_factory=list)

    # Moderation
    flags: FlagSet = field(default_factory=FlagSet)
    is_hidden: bool = False

    # Community votes
    votes: VoteSet = field(default_factory=VoteSet)

    # Timestamps
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    @property
    def flag_count(self) -> int:
        return len(self.flags)

    @property
    def is_flagged(self) -> bool:
        return len(self.flags) > 0

    @property
    def upvote_count(self) -> int:
        return self.votes.count(VoteType.UPVOTE)

    @property
    def downvote_count(self) -> int:
        return self.votes.count(VoteType.DOWNVOTE)

    @property
    def net_votes(self) -> int:
        return self.upvote_count - self.downvote_count

    def copy(self) -> "IssueRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "location": self.location.to_dict(),
            "reporter_id": self.reporter_id,
            "is_anonymous": self.is_anonymous,
            "status": self.status.value,
            "priority": self.priority.value,
            "flags": [entry.to_dict() for entry in self.flags.entries()],
            "flag_count": self.flag_count,
            "is_hidden": self.is_hidden,
            "votes": [entry.to_dict() for entry in self.votes.entries()],
            "upvote_count": self.upvote_count,
            "downvote_count": self.downvote_count,
            "net_votes": self.net_votes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "status_history": [event.to_dict() for event in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IssueRecord":
        """Create IssueRecord from dictionary."""
        resolved_at = data.get("resolved_at")
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            category=IssueCategory(data["category"]),
            location=IssueLocation.from_dict(data["location"]),
            reporter_id=data.get("reporter_id"),
            is_anonymous=data.get("is_anonymous", False),
            status=IssueStatus(data["status"]),
            priority=IssuePriority(data.get("priority", IssuePriority.MEDIUM.value)),
            status_history=[StatusEvent.from_dict(e) for e in data.get("status_history", [])],
            flags=FlagSet([FlagEntry.from_dict(f) for f in data.get("flags", [])]),
            is_hidden=data.get("is_hidden", False),
            votes=VoteSet([VoteEntry.from_dict(v) for v in data.get("votes", [])]),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            resolved_at=_parse_datetime(resolved_at) if resolved_at else None,
        )


@dataclass
class FlagResult:
    """Outcome of flagging an issue."""
    issue: IssueRecord
    crossed_threshold: bool


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
