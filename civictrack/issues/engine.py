"""
IssueEngine - single entry point for the exposed operations.

Wires the submission, workflow, moderation, voting and query services
around one repository and one event dispatcher.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from civictrack.core.config import Settings, settings as default_settings
from civictrack.issues.events import EventDispatcher, NullEventDispatcher
from civictrack.issues.models import (
    Actor,
    FlagResult,
    IssueRecord,
    IssueStatus,
    ReporterProfile,
    VoteType,
    utcnow,
)
from civictrack.issues.moderation import ModerationService
from civictrack.issues.query import IssueFilters, QueryService
from civictrack.issues.repository import IssueRepository, Page
from civictrack.issues.submission import SubmissionService
from civictrack.issues.voting import VotingService
from civictrack.issues.workflow import StatusWorkflow

logger = logging.getLogger(__name__)


class IssueEngine:
    """Facade over the geofenced submission and moderation services."""

    def __init__(
        self,
        repository: IssueRepository,
        dispatcher: Optional[EventDispatcher] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        config = config or default_settings
        self.repository = repository
        self.dispatcher = dispatcher or NullEventDispatcher()

        self.workflow = StatusWorkflow(repository, self.dispatcher, clock=clock)
        self.submissions = SubmissionService(
            repository,
            self.dispatcher,
            system_max_radius_km=config.system_max_radius_km,
            clock=clock,
        )
        self.moderation = ModerationService(
            repository,
            self.workflow,
            self.dispatcher,
            auto_hide_threshold=config.auto_hide_flag_threshold,
            clock=clock,
        )
        self.voting = VotingService(repository, clock=clock)
        self.queries = QueryService(
            repository,
            default_page_size=config.default_page_size,
            max_page_size=config.max_page_size,
        )

    def create_issue(self, reporter_profile: ReporterProfile, payload: Mapping[str, Any]) -> IssueRecord:
        return self.submissions.create_issue(reporter_profile, payload)

    def transition_status(
        self,
        issue_id: str,
        new_status: Union[IssueStatus, str],
        actor: Actor,
        comment: Optional[str] = None
    ) -> IssueRecord:
        return self.workflow.transition(issue_id, new_status, actor, comment)

    def flag_issue(self, issue_id: str, flagger_id: str, reason: str) -> FlagResult:
        return self.moderation.add_flag(issue_id, flagger_id, reason)

    def clear_flags(self, issue_id: str, admin_actor: Actor) -> IssueRecord:
        return self.moderation.clear_flags(issue_id, admin_actor)

    def reject_as_spam(self, issue_id: str, admin_actor: Actor, comment: Optional[str] = None) -> IssueRecord:
        return self.moderation.reject_as_spam(issue_id, admin_actor, comment)

    def cast_vote(self, issue_id: str, voter: Actor, vote_type: Union[VoteType, str]) -> IssueRecord:
        return self.voting.cast_vote(issue_id, voter, vote_type)

    def retract_vote(self, issue_id: str, voter: Actor) -> IssueRecord:
        return self.voting.retract_vote(issue_id, voter)

    def list_flagged(
        self,
        admin_actor: Actor,
        page: int = 1,
        page_size: Optional[int] = None
    ) -> Page[IssueRecord]:
        """Moderation queue: flagged issues, hidden or not, newest first."""
        return self.queries.list(IssueFilters(flagged_only=True, page=page, page_size=page_size), admin_actor)

    def list_issues(self, filters: Optional[IssueFilters] = None, viewer: Optional[Actor] = None) -> Page[IssueRecord]:
        return self.queries.list(filters, viewer)

    def get_issue(self, issue_id: str, viewer: Optional[Actor] = None) -> IssueRecord:
        return self.queries.get(issue_id, viewer)
