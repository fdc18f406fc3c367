"""
Database module for CivicTrack
Relational persistence for issues, status history, flags and votes
"""

from .connection import DatabaseConnection
from .models import (
    Base,
    IssueRow,
    StatusEventRow,
    IssueFlagRow,
    IssueVoteRow
)
from .repository import SqlAlchemyIssueRepository

__all__ = [
    "DatabaseConnection",
    "Base",
    "IssueRow",
    "StatusEventRow",
    "IssueFlagRow",
    "IssueVoteRow",
    "SqlAlchemyIssueRepository"
]
