"""
Status Workflow - strict state machine for issue resolution.

Rules:
- Only edges listed in the transition graph are allowed
- Closing from an arbitrary state and reopening a resolved issue are admin only
- Every change appends a StatusEvent; history is never rewritten
- resolved_at is set while, and only while, the issue is RESOLVED
"""

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from civictrack.core.errors import InvalidTransition
from civictrack.issues.events import (
    EventDispatcher,
    IssueEvent,
    IssueEventType,
    NullEventDispatcher,
    safe_dispatch,
)
from civictrack.issues.models import (
    Actor,
    IssueRecord,
    IssueStatus,
    StatusEvent,
    new_id,
    utcnow,
)
from civictrack.issues.repository import IssueRepository
from civictrack.issues.validation import parse_enum, validate_comment

logger = logging.getLogger(__name__)

INITIAL_STATUS = IssueStatus.REPORTED


class StatusWorkflow:
    """
    Enforces the issue status graph and records the audit trail.

    Transitions run inside ``repository.update`` so the graph check, the
    history append and the status change are one atomic step per record.
    """

    # Edges open to any verified actor
    ALLOWED_TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
        IssueStatus.REPORTED: frozenset({IssueStatus.IN_REVIEW, IssueStatus.REJECTED}),
        IssueStatus.IN_REVIEW: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.REJECTED}),
        IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED, IssueStatus.REJECTED}),
        IssueStatus.RESOLVED: frozenset({IssueStatus.CLOSED}),
        IssueStatus.REJECTED: frozenset(),
        IssueStatus.CLOSED: frozenset(),
    }

    # Extra edges for admins; CLOSED is additionally reachable from any other state
    ADMIN_TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
        IssueStatus.RESOLVED: frozenset({IssueStatus.IN_PROGRESS}),
    }

    def __init__(
        self,
        repository: IssueRepository,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.repository = repository
        self.dispatcher = dispatcher or NullEventDispatcher()
        self.clock = clock

    @classmethod
    def is_allowed(cls, from_status: IssueStatus, to_status: IssueStatus, actor: Actor) -> bool:
        """Check whether ``actor`` may move an issue between the two states."""
        return to_status in cls.allowed_transitions(from_status, actor)

    @classmethod
    def allowed_transitions(cls, current_status: IssueStatus, actor: Actor) -> List[IssueStatus]:
        """List next states reachable by ``actor``, in declaration order."""
        allowed = set(cls.ALLOWED_TRANSITIONS.get(current_status, frozenset()))
        if actor.is_admin:
            allowed |= cls.ADMIN_TRANSITIONS.get(current_status, frozenset())
            if current_status != IssueStatus.CLOSED:
                allowed.add(IssueStatus.CLOSED)
        return [status for status in IssueStatus if status in allowed]

    @staticmethod
    def initial_event(changed_by: str, timestamp: datetime) -> StatusEvent:
        """First history entry of every issue."""
        return StatusEvent(
            id=new_id(),
            from_status=None,
            to_status=INITIAL_STATUS,
            changed_by=changed_by,
            timestamp=timestamp,
        )

    @classmethod
    def apply(
        cls,
        record: IssueRecord,
        new_status: IssueStatus,
        actor: Actor,
        comment: Optional[str],
        now: datetime
    ) -> StatusEvent:
        """
        Move ``record`` to ``new_status`` in place.

        Raises:
            InvalidTransition: if the edge is not allowed; the record is
                left untouched
        """
        old_status = record.status
        if not cls.is_allowed(old_status, new_status, actor):
            raise InvalidTransition(old_status, new_status)

        event = StatusEvent(
            id=new_id(),
            from_status=old_status,
            to_status=new_status,
            changed_by=actor.actor_id,
            comment=comment,
            timestamp=now,
        )

        record.status_history.append(event)
        record.status = new_status
        record.updated_at = now

        if new_status == IssueStatus.RESOLVED:
            record.resolved_at = now
        else:
            record.resolved_at = None

        return event

    def transition(
        self,
        issue_id: str,
        new_status: Union[IssueStatus, str],
        actor: Actor,
        comment: Optional[str] = None
    ) -> IssueRecord:
        """
        Change the status of an issue.

        Args:
            issue_id: Issue to change
            new_status: Target status
            actor: Verified caller
            comment: Optional note stored on the status event

        Returns:
            Updated IssueRecord

        Raises:
            ValidationError: unknown status or oversized comment
            NotFound: no such issue
            InvalidTransition: edge not permitted for this actor
        """
        target = parse_enum(new_status, IssueStatus, "status")
        comment = validate_comment(comment)
        recorded: Dict[str, StatusEvent] = {}

        def mutate(record: IssueRecord) -> IssueRecord:
            recorded["event"] = self.apply(record, target, actor, comment, self.clock())
            return record

        try:
            updated = self.repository.update(issue_id, mutate)
        except InvalidTransition as e:
            logger.warning(
                f"Rejected transition on issue {issue_id} by {actor.actor_id}: "
                f"{e.from_status.value} -> {target.value}"
            )
            raise

        event = recorded["event"]
        logger.info(
            f"Issue {issue_id} status: {event.from_status.value} -> {event.to_status.value} "
            f"by {actor.actor_id}"
        )

        safe_dispatch(self.dispatcher, IssueEvent(
            type=IssueEventType.STATUS_CHANGED,
            issue_id=issue_id,
            occurred_at=event.timestamp,
            payload={
                "from_status": event.from_status.value,
                "to_status": event.to_status.value,
                "changed_by": event.changed_by,
                "comment": event.comment,
                "reporter_id": updated.reporter_id,
            },
        ))

        return updated
