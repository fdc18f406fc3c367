"""
SQLAlchemy models for CivicTrack
One canonical persisted shape for issues, their status history, flags and votes.
"""

from datetime import datetime

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean,
    DateTime, ForeignKey, Index, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base, relationship

from civictrack.core.constants import (
    ADDRESS_MAX_LENGTH,
    FLAG_REASON_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)
from civictrack.core.geo_utils import GeoPoint
from civictrack.issues.models import (
    FlagEntry,
    FlagSet,
    IssueCategory,
    IssueLocation,
    IssuePriority,
    IssueRecord,
    IssueStatus,
    StatusEvent,
    VoteEntry,
    VoteSet,
    VoteType,
)

Base = declarative_base()


def _enum_column(enum_cls, name: str) -> SQLEnum:
    """Store enum values (the canonical lowercase vocabulary), not member names."""
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class IssueRow(Base):
    """
    Civic issue.

    ``version`` is the optimistic-locking counter; SQLAlchemy bumps it on
    every UPDATE and refuses to write over a newer version.
    """
    __tablename__ = "issues"

    id = Column(String(36), primary_key=True)

    # Issue details
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(_enum_column(IssueCategory, "issue_category"), nullable=False)
    priority = Column(_enum_column(IssuePriority, "issue_priority"), nullable=False)
    status = Column(_enum_column(IssueStatus, "issue_status"), nullable=False)

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(ADDRESS_MAX_LENGTH), nullable=False)

    # Reporter
    reporter_id = Column(String(64), nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)

    # Moderation
    flag_count = Column(Integer, nullable=False, default=0)
    is_hidden = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    status_events = relationship(
        "StatusEventRow",
        back_populates="issue",
        order_by="StatusEventRow.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    flags = relationship(
        "IssueFlagRow",
        back_populates="issue",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    votes = relationship(
        "IssueVoteRow",
        back_populates="issue",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_issue_status", status),
        Index("idx_issue_category", category),
        Index("idx_issue_reporter", reporter_id),
        Index("idx_issue_hidden", is_hidden),
        Index("idx_issue_created_at", created_at),
        Index("idx_issue_lat_lng", latitude, longitude),
    )

    def __repr__(self):
        return f"<IssueRow({self.id}, status={self.status.value if self.status else None}, flags={self.flag_count})>"

    @property
    def location_point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @classmethod
    def from_record(cls, record: IssueRecord) -> "IssueRow":
        """Create a row (with children) from a domain record."""
        row = cls(id=record.id)
        row.apply(record)
        return row

    def apply(self, record: IssueRecord) -> None:
        """
        Copy a domain record onto this row.

        Status history is append-only: events already stored are kept and
        only new ones are added, numbered after the last stored sequence.
        Flags and votes are synchronized as sets keyed by flagger and voter id.
        """
        self.title = record.title
        self.description = record.description
        self.category = record.category
        self.priority = record.priority
        self.status = record.status
        self.latitude = record.location.latitude
        self.longitude = record.location.longitude
        self.address = record.location.address
        self.reporter_id = record.reporter_id
        self.is_anonymous = record.is_anonymous
        self.flag_count = record.flag_count
        self.is_hidden = record.is_hidden
        self.created_at = record.created_at
        self.updated_at = record.updated_at
        self.resolved_at = record.resolved_at

        stored_events = {event.id for event in self.status_events}
        next_sequence = len(self.status_events)
        for event in record.status_history:
            if event.id in stored_events:
                continue
            self.status_events.append(StatusEventRow.from_event(event, next_sequence))
            next_sequence += 1

        wanted = {entry.flagger_id: entry for entry in record.flags.entries()}
        for flag_row in list(self.flags):
            if flag_row.flagger_id not in wanted:
                self.flags.remove(flag_row)
        stored_flaggers = {flag_row.flagger_id for flag_row in self.flags}
        for flagger_id, entry in wanted.items():
            if flagger_id not in stored_flaggers:
                self.flags.append(IssueFlagRow.from_entry(entry))

        ballots = {entry.voter_id: entry for entry in record.votes.entries()}
        for vote_row in list(self.votes):
            entry = ballots.pop(vote_row.voter_id, None)
            if entry is None:
                self.votes.remove(vote_row)
            elif (vote_row.vote_type, vote_row.created_at) != (entry.vote_type, entry.voted_at):
                vote_row.vote_type = entry.vote_type
                vote_row.created_at = entry.voted_at
        for entry in ballots.values():
            self.votes.append(IssueVoteRow.from_entry(entry))

    def to_record(self) -> IssueRecord:
        """Convert to a detached domain record."""
        return IssueRecord(
            id=self.id,
            title=self.title,
            description=self.description,
            category=self.category,
            location=IssueLocation(
                latitude=self.latitude,
                longitude=self.longitude,
                address=self.address,
            ),
            reporter_id=self.reporter_id,
            is_anonymous=self.is_anonymous,
            status=self.status,
            priority=self.priority,
            status_history=[event.to_event() for event in self.status_events],
            flags=FlagSet([flag.to_entry() for flag in sorted(self.flags, key=lambda f: (f.created_at, f.flagger_id))]),
            is_hidden=self.is_hidden,
            votes=VoteSet([vote.to_entry() for vote in sorted(self.votes, key=lambda v: (v.created_at, v.voter_id))]),
            created_at=self.created_at,
            updated_at=self.updated_at,
            resolved_at=self.resolved_at,
        )


class StatusEventRow(Base):
    """
    One entry of an issue's status history.

    ``sequence`` preserves the exact append order.
    """
    __tablename__ = "status_events"

    id = Column(String(36), primary_key=True)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)

    from_status = Column(_enum_column(IssueStatus, "issue_status"), nullable=True)
    to_status = Column(_enum_column(IssueStatus, "issue_status"), nullable=False)
    changed_by = Column(String(64), nullable=False)
    comment = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False)

    issue = relationship("IssueRow", back_populates="status_events")

    __table_args__ = (
        UniqueConstraint("issue_id", "sequence", name="uq_status_event_sequence"),
        Index("idx_status_event_issue", issue_id),
    )

    def __repr__(self):
        return f"<StatusEventRow({self.issue_id}#{self.sequence}, to={self.to_status})>"

    @classmethod
    def from_event(cls, event: StatusEvent, sequence: int) -> "StatusEventRow":
        return cls(
            id=event.id,
            sequence=sequence,
            from_status=event.from_status,
            to_status=event.to_status,
            changed_by=event.changed_by,
            comment=event.comment,
            changed_at=event.timestamp,
        )

    def to_event(self) -> StatusEvent:
        return StatusEvent(
            id=self.id,
            from_status=self.from_status,
            to_status=self.to_status,
            changed_by=self.changed_by,
            comment=self.comment,
            timestamp=self.changed_at,
        )


class IssueFlagRow(Base):
    """
    Community flag on an issue.

    The unique constraint makes the store itself reject a second flag from
    the same flagger.
    """
    __tablename__ = "issue_flags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    flagger_id = Column(String(64), nullable=False)
    reason = Column(String(FLAG_REASON_MAX_LENGTH), nullable=True)
    created_at = Column(DateTime, nullable=False)

    issue = relationship("IssueRow", back_populates="flags")

    __table_args__ = (
        UniqueConstraint("issue_id", "flagger_id", name="uq_issue_flag_flagger"),
        Index("idx_issue_flag_issue", issue_id),
    )

    def __repr__(self):
        return f"<IssueFlagRow({self.issue_id}, flagger={self.flagger_id})>"

    @classmethod
    def from_entry(cls, entry: FlagEntry) -> "IssueFlagRow":
        return cls(flagger_id=entry.flagger_id, reason=entry.reason, created_at=entry.flagged_at)

    def to_entry(self) -> FlagEntry:
        return FlagEntry(flagger_id=self.flagger_id, reason=self.reason, flagged_at=self.created_at)


class IssueVoteRow(Base):
    """
    Community vote on an issue.

    One row per voter; changing a vote updates the row in place.
    """
    __tablename__ = "issue_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    voter_id = Column(String(64), nullable=False)
    vote_type = Column(_enum_column(VoteType, "vote_type"), nullable=False)
    created_at = Column(DateTime, nullable=False)

    issue = relationship("IssueRow", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("issue_id", "voter_id", name="uq_issue_vote_voter"),
        Index("idx_issue_vote_issue", issue_id),
    )

    def __repr__(self):
        return f"<IssueVoteRow({self.issue_id}, voter={self.voter_id}, {self.vote_type})>"

    @classmethod
    def from_entry(cls, entry: VoteEntry) -> "IssueVoteRow":
        return cls(voter_id=entry.voter_id, vote_type=entry.vote_type, created_at=entry.voted_at)

    def to_entry(self) -> VoteEntry:
        return VoteEntry(voter_id=self.voter_id, vote_type=self.vote_type, voted_at=self.created_at)
