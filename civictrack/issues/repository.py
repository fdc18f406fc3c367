"""
Persistence contract for issue records and an in-process implementation.

Stores hand out copies: a record obtained from ``find_by_id`` or ``query``
can be modified freely without affecting stored state. The only way to
change a stored record is ``update(issue_id, mutator)``, which runs the
mutator on a fresh copy under a per-record lock and saves its result.
"""

import logging
import math
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Iterator, List, Optional, Protocol, TypeVar
from dataclasses import dataclass

from civictrack.core.errors import NotFound
from civictrack.core.geo_utils import GeoPoint, is_within_radius
from civictrack.issues.models import (
    IssueCategory,
    IssuePriority,
    IssueRecord,
    IssueStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[IssueRecord], IssueRecord]


@dataclass
class Page(Generic[T]):
    """One page of an ordered result set."""
    items: List[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self) -> Dict:
        return {
            "items": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.items],
            "pagination": {
                "page": self.page,
                "page_size": self.page_size,
                "total": self.total,
                "total_pages": self.total_pages,
                "has_next": self.has_next,
                "has_prev": self.has_prev,
            },
        }


@dataclass
class IssueQuery:
    """Store-level filter criteria. All fields are optional."""
    category: Optional[IssueCategory] = None
    status: Optional[IssueStatus] = None
    priority: Optional[IssuePriority] = None
    reporter_id: Optional[str] = None
    search: Optional[str] = None
    center: Optional[GeoPoint] = None
    radius_km: Optional[float] = None
    include_hidden: bool = False
    flagged_only: bool = False
    page: int = 1
    page_size: int = 10

    @property
    def has_radius(self) -> bool:
        return self.center is not None and self.radius_km is not None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def matches(self, record: IssueRecord) -> bool:
        """Evaluate every filter against a record."""
        if not self.include_hidden and record.is_hidden:
            return False
        if self.category is not None and record.category != self.category:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.priority is not None and record.priority != self.priority:
            return False
        if self.reporter_id is not None and record.reporter_id != self.reporter_id:
            return False
        if self.flagged_only and not record.is_flagged:
            return False
        if self.search and not self.matches_text(record.title, record.description, record.location.address):
            return False
        if self.has_radius and not is_within_radius(self.center, record.location.point, self.radius_km):
            return False
        return True

    def matches_text(self, *texts: str) -> bool:
        """Case-insensitive substring match of the search term in any text."""
        needle = self.search.casefold()
        return any(needle in text.casefold() for text in texts if text)


def newest_first(records: List[IssueRecord]) -> List[IssueRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


class IssueRepository(Protocol):
    """Persistence store consumed by the engine."""

    def create(self, record: IssueRecord) -> IssueRecord:
        ...

    def find_by_id(self, issue_id: str) -> Optional[IssueRecord]:
        ...

    def update(self, issue_id: str, mutator: Mutator) -> IssueRecord:
        ...

    def query(self, criteria: IssueQuery) -> Page[IssueRecord]:
        ...


class RecordLocks:
    """
    Registry of per-record locks.

    A lock exists only while some thread holds or waits for it, so the
    registry stays as small as the number of records being written.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryIssueRepository:
    """
    Dictionary-backed issue store.

    Suitable for tests and single-process deployments. Writes to one record
    are serialized by that record's lock; writes to different records and all
    reads proceed concurrently.
    """

    def __init__(self):
        self._records: Dict[str, IssueRecord] = {}
        self._locks = RecordLocks()

        logger.info("InMemoryIssueRepository initialized")

    def create(self, record: IssueRecord) -> IssueRecord:
        with self._locks.hold(record.id):
            if record.id in self._records:
                raise ValueError(f"Issue {record.id} already exists")
            self._records[record.id] = record.copy()
        return record.copy()

    def find_by_id(self, issue_id: str) -> Optional[IssueRecord]:
        record = self._records.get(issue_id)
        return record.copy() if record else None

    def update(self, issue_id: str, mutator: Mutator) -> IssueRecord:
        with self._locks.hold(issue_id):
            current = self._records.get(issue_id)
            if current is None:
                raise NotFound(issue_id)
            updated = mutator(current.copy())
            self._records[issue_id] = updated.copy()
        return updated

    def query(self, criteria: IssueQuery) -> Page[IssueRecord]:
        matched = newest_first([r for r in list(self._records.values()) if criteria.matches(r)])
        items = matched[criteria.offset:criteria.offset + criteria.page_size]
        return Page(
            items=[r.copy() for r in items],
            total=len(matched),
            page=criteria.page,
            page_size=criteria.page_size,
        )

    def __len__(self) -> int:
        return len(self._records)
