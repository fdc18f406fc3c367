"""
Community moderation: flag accumulation and threshold-driven auto-hiding.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from civictrack.core.config import settings
from civictrack.core.errors import DuplicateFlag, PermissionDenied
from civictrack.issues.events import (
    EventDispatcher,
    IssueEvent,
    IssueEventType,
    NullEventDispatcher,
    safe_dispatch,
)
from civictrack.issues.models import (
    Actor,
    FlagEntry,
    FlagResult,
    IssueRecord,
    IssueStatus,
    utcnow,
)
from civictrack.issues.repository import IssueRepository
from civictrack.issues.validation import validate_flag_reason
from civictrack.issues.workflow import StatusWorkflow

logger = logging.getLogger(__name__)


class ModerationService:
    """
    Handles community flags and admin moderation actions.

    An issue is hidden the moment its distinct-flagger count first reaches
    ``auto_hide_threshold`` and stays hidden until an admin clears the flags.
    Crossing the threshold only changes visibility; escalation is left to
    whoever subscribes to the ``auto_hidden`` event.
    """

    def __init__(
        self,
        repository: IssueRepository,
        workflow: StatusWorkflow,
        dispatcher: Optional[EventDispatcher] = None,
        auto_hide_threshold: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize moderation service.

        Args:
            repository: Issue store
            workflow: Status workflow used for spam rejection
            dispatcher: Receiver of auto_hidden events
            auto_hide_threshold: Distinct flaggers that hide an issue
                (default from settings)
            clock: Timestamp source
        """
        threshold = auto_hide_threshold if auto_hide_threshold is not None else settings.auto_hide_flag_threshold
        if threshold < 1:
            raise ValueError("auto_hide_threshold must be at least 1")

        self.repository = repository
        self.workflow = workflow
        self.dispatcher = dispatcher or NullEventDispatcher()
        self.auto_hide_threshold = threshold
        self.clock = clock

    def add_flag(self, issue_id: str, flagger_id: str, reason: str) -> FlagResult:
        """
        Flag an issue on behalf of a community member.

        Args:
            issue_id: Issue to flag
            flagger_id: Verified id of the flagging user
            reason: Why the issue is being flagged

        Returns:
            FlagResult with the updated issue and whether this flag hid it

        Raises:
            ValidationError: missing or oversized reason
            NotFound: no such issue
            DuplicateFlag: this flagger already flagged the issue
        """
        reason = validate_flag_reason(reason)
        outcome: Dict[str, bool] = {}

        def mutate(record: IssueRecord) -> IssueRecord:
            if flagger_id in record.flags:
                raise DuplicateFlag(record.id, flagger_id)

            now = self.clock()
            record.flags.add(FlagEntry(flagger_id=flagger_id, reason=reason, flagged_at=now))
            record.updated_at = now

            crossed = not record.is_hidden and record.flag_count >= self.auto_hide_threshold
            if crossed:
                record.is_hidden = True
            outcome["crossed"] = crossed
            return record

        try:
            updated = self.repository.update(issue_id, mutate)
        except DuplicateFlag:
            logger.warning(f"Duplicate flag on issue {issue_id} by {flagger_id}")
            raise

        crossed = outcome["crossed"]
        logger.info(f"Issue {issue_id} flagged by {flagger_id} (flag_count={updated.flag_count})")

        if crossed:
            logger.info(f"Issue {issue_id} auto-hidden at {updated.flag_count} flags")
            safe_dispatch(self.dispatcher, IssueEvent(
                type=IssueEventType.AUTO_HIDDEN,
                issue_id=issue_id,
                occurred_at=updated.updated_at,
                payload={
                    "flag_count": updated.flag_count,
                    "threshold": self.auto_hide_threshold,
                },
            ))

        return FlagResult(issue=updated, crossed_threshold=crossed)

    def clear_flags(self, issue_id: str, admin_actor: Actor) -> IssueRecord:
        """
        Remove every flag and unhide the issue. Status is left unchanged.

        Raises:
            PermissionDenied: actor is not an admin
            NotFound: no such issue
        """
        self._require_admin(admin_actor, "clear flags")

        def mutate(record: IssueRecord) -> IssueRecord:
            record.flags.clear()
            record.is_hidden = False
            record.updated_at = self.clock()
            return record

        updated = self.repository.update(issue_id, mutate)
        logger.info(f"Flags cleared on issue {issue_id} by {admin_actor.actor_id}")
        return updated

    def reject_as_spam(self, issue_id: str, admin_actor: Actor, comment: Optional[str] = None) -> IssueRecord:
        """
        Reject an issue through the status workflow.

        Visibility is not touched: a hidden issue stays hidden.
        """
        self._require_admin(admin_actor, "reject issues as spam")
        return self.workflow.transition(issue_id, IssueStatus.REJECTED, admin_actor, comment)

    def _require_admin(self, actor: Actor, action: str) -> None:
        if not actor.is_admin:
            logger.warning(f"Actor {actor.actor_id} denied: {action}")
            raise PermissionDenied(actor.actor_id, action)
