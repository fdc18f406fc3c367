"""
CivicTrack - Issues Module
Geofenced submission, status workflow, moderation, voting and listing of civic issues.
"""

from civictrack.issues.models import (
    Actor,
    FlagResult,
    IssueCategory,
    IssueLocation,
    IssuePriority,
    IssueRecord,
    IssueStatus,
    ReporterProfile,
    Role,
    StatusEvent,
    VoteType,
)
from civictrack.issues.events import (
    InMemoryEventDispatcher,
    IssueEvent,
    IssueEventType,
)
from civictrack.issues.repository import (
    InMemoryIssueRepository,
    IssueQuery,
    IssueRepository,
    Page,
)
from civictrack.issues.workflow import StatusWorkflow
from civictrack.issues.moderation import ModerationService
from civictrack.issues.submission import SubmissionService
from civictrack.issues.voting import VotingService
from civictrack.issues.query import IssueFilters, QueryService
from civictrack.issues.engine import IssueEngine

__all__ = [
    # Models
    "Actor",
    "FlagResult",
    "IssueCategory",
    "IssueLocation",
    "IssuePriority",
    "IssueRecord",
    "IssueStatus",
    "ReporterProfile",
    "Role",
    "StatusEvent",
    "VoteType",
    # Events
    "InMemoryEventDispatcher",
    "IssueEvent",
    "IssueEventType",
    # Persistence
    "InMemoryIssueRepository",
    "IssueQuery",
    "IssueRepository",
    "Page",
    # Services
    "StatusWorkflow",
    "ModerationService",
    "SubmissionService",
    "VotingService",
    "IssueFilters",
    "QueryService",
    "IssueEngine",
]
