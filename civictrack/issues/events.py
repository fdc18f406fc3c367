"""
Logical events emitted by the engine for an external notification subscriber.

The engine never delivers notifications itself. It hands an IssueEvent to
the injected dispatcher after the corresponding write has been persisted.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from dataclasses import dataclass, field
from enum import Enum

from civictrack.issues.models import utcnow

logger = logging.getLogger(__name__)


class IssueEventType(str, Enum):
    """Kinds of engine events."""
    ISSUE_CREATED = "issue_created"
    STATUS_CHANGED = "status_changed"
    AUTO_HIDDEN = "auto_hidden"


@dataclass
class IssueEvent:
    """Something a subscriber may want to act on."""
    type: IssueEventType
    issue_id: str
    occurred_at: datetime = field(default_factory=utcnow)
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "issue_id": self.issue_id,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


Subscriber = Callable[[IssueEvent], None]


class EventDispatcher(Protocol):
    def dispatch(self, event: IssueEvent) -> None:
        ...


class NullEventDispatcher:
    """Discards every event."""

    def dispatch(self, event: IssueEvent) -> None:
        logger.debug(f"Discarding {event.type.value} for issue {event.issue_id}")


class InMemoryEventDispatcher:
    """
    Records events and fans them out to subscribers.

    A subscriber that raises is logged and skipped; the remaining
    subscribers still receive the event and the originating write stands.
    """

    def __init__(self):
        self.events: List[IssueEvent] = []
        self._subscribers: List[Tuple[Optional[IssueEventType], Subscriber]] = []

    def subscribe(self, subscriber: Subscriber, event_type: Optional[IssueEventType] = None) -> None:
        """Register a callback for one event type, or for all when None."""
        self._subscribers.append((event_type, subscriber))

    def dispatch(self, event: IssueEvent) -> None:
        self.events.append(event)

        for event_type, subscriber in self._subscribers:
            if event_type is not None and event_type != event.type:
                continue
            try:
                subscriber(event)
            except Exception:
                logger.exception(f"Subscriber failed for {event.type.value} on issue {event.issue_id}")

    def of_type(self, event_type: IssueEventType) -> List[IssueEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


def safe_dispatch(dispatcher: EventDispatcher, event: IssueEvent) -> None:
    """Dispatch without letting a dispatcher failure escape a completed write."""
    try:
        dispatcher.dispatch(event)
    except Exception:
        logger.exception(f"Event dispatch failed for {event.type.value} on issue {event.issue_id}")
