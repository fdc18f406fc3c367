"""
SQLAlchemy-backed issue store.

Implements the same contract as InMemoryIssueRepository. Writes to one
record are serialized in-process by a per-record lock and across processes
by the row's version counter: a write that lost the race is retried on
fresh state, and gives up with ConcurrencyConflict after ``max_retries``.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from civictrack.core.config import settings
from civictrack.core.errors import ConcurrencyConflict, InfrastructureError, NotFound
from civictrack.core.geo_utils import bounding_box, is_within_radius
from civictrack.issues.models import IssueRecord
from civictrack.issues.repository import IssueQuery, Mutator, Page, RecordLocks

from .connection import DatabaseConnection
from .models import IssueRow

logger = logging.getLogger(__name__)


class SqlAlchemyIssueRepository:
    """Relational issue store."""

    def __init__(self, db: DatabaseConnection, max_retries: Optional[int] = None):
        """
        Initialize the store.

        Args:
            db: Connection manager providing sessions
            max_retries: Write attempts before ConcurrencyConflict
                (default from settings)
        """
        self.db = db
        self.max_retries = max_retries or settings.update_max_retries
        self._locks = RecordLocks()

        logger.info(f"SqlAlchemyIssueRepository initialized (max retries {self.max_retries})")

    def create(self, record: IssueRecord) -> IssueRecord:
        try:
            with self.db.get_session() as session:
                session.add(IssueRow.from_record(record))
        except IntegrityError as e:
            raise ValueError(f"Issue {record.id} already exists") from e
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Failed to store issue {record.id}") from e
        return record.copy()

    def find_by_id(self, issue_id: str) -> Optional[IssueRecord]:
        try:
            with self.db.get_session() as session:
                row = session.get(IssueRow, issue_id)
                return row.to_record() if row is not None else None
        except SQLAlchemyError as e:
            raise InfrastructureError(f"Failed to load issue {issue_id}") from e

    def update(self, issue_id: str, mutator: Mutator) -> IssueRecord:
        """
        Apply ``mutator`` to the stored record and save the result.

        The mutator may run more than once when another writer commits
        first; it always receives the latest committed state. Exceptions it
        raises abort the update without writing anything.
        """
        with self._locks.hold(issue_id):
            for attempt in range(1, self.max_retries + 1):
                try:
                    with self.db.get_session() as session:
                        row = session.get(IssueRow, issue_id)
                        if row is None:
                            raise NotFound(issue_id)
                        updated = mutator(row.to_record())
                        row.apply(updated)
                    return updated.copy()
                except (StaleDataError, IntegrityError) as e:
                    logger.warning(
                        f"Concurrent write on issue {issue_id} "
                        f"(attempt {attempt}/{self.max_retries}): {e.__class__.__name__}"
                    )
                except SQLAlchemyError as e:
                    raise InfrastructureError(f"Failed to update issue {issue_id}") from e

        logger.error(f"Giving up on issue {issue_id} after {self.max_retries} attempts")
        raise ConcurrencyConflict(issue_id, self.max_retries)

    def query(self, criteria: IssueQuery) -> Page[IssueRecord]:
        """
        Filter, order newest first and paginate.

        Radius queries are narrowed in SQL by a bounding box, then filtered
        exactly by great-circle distance before paging. Text search is
        matched in Python with the same case folding as the in-memory store,
        since SQL lower() folds only ASCII on some backends.
        """
        stmt = select(IssueRow)

        if not criteria.include_hidden:
            stmt = stmt.where(IssueRow.is_hidden.is_(False))
        if criteria.category is not None:
            stmt = stmt.where(IssueRow.category == criteria.category)
        if criteria.status is not None:
            stmt = stmt.where(IssueRow.status == criteria.status)
        if criteria.priority is not None:
            stmt = stmt.where(IssueRow.priority == criteria.priority)
        if criteria.reporter_id is not None:
            stmt = stmt.where(IssueRow.reporter_id == criteria.reporter_id)
        if criteria.flagged_only:
            stmt = stmt.where(IssueRow.flag_count > 0)

        if criteria.has_radius:
            box = bounding_box(criteria.center, criteria.radius_km)
            stmt = stmt.where(IssueRow.latitude.between(box.south, box.north))
            if not (box.crosses_antimeridian or box.contains_pole):
                stmt = stmt.where(IssueRow.longitude.between(box.west, box.east))

        ordered = stmt.order_by(IssueRow.created_at.desc(), IssueRow.id.desc())

        try:
            with self.db.get_session() as session:
                if criteria.has_radius or criteria.search:
                    matched = [row for row in session.scalars(ordered) if self._matches_exactly(criteria, row)]
                    total = len(matched)
                    page_rows = matched[criteria.offset:criteria.offset + criteria.page_size]
                    items: List[IssueRecord] = [row.to_record() for row in page_rows]
                else:
                    total = session.scalar(select(func.count()).select_from(stmt.subquery()))
                    rows = session.scalars(ordered.offset(criteria.offset).limit(criteria.page_size))
                    items = [row.to_record() for row in rows]
        except SQLAlchemyError as e:
            raise InfrastructureError("Failed to query issues") from e

        return Page(items=items, total=total or 0, page=criteria.page, page_size=criteria.page_size)

    @staticmethod
    def _matches_exactly(criteria: IssueQuery, row: IssueRow) -> bool:
        if criteria.search and not criteria.matches_text(row.title, row.description, row.address):
            return False
        if criteria.has_radius:
            return is_within_radius(criteria.center, row.location_point, criteria.radius_km)
        return True
