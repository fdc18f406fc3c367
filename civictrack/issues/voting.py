"""
Community voting on issues.

Each community member holds at most one vote per issue. Casting a vote
replaces any earlier vote by the same voter; retracting removes it.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Union

from civictrack.core.errors import NotFound
from civictrack.issues.models import (
    Actor,
    IssueRecord,
    VoteEntry,
    VoteType,
    utcnow,
)
from civictrack.issues.repository import IssueRepository
from civictrack.issues.validation import parse_enum

logger = logging.getLogger(__name__)


class VotingService:
    """Casts and retracts votes through the repository's atomic update."""

    def __init__(self, repository: IssueRepository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    def cast_vote(self, issue_id: str, voter: Actor, vote_type: Union[VoteType, str]) -> IssueRecord:
        """
        Record ``voter``'s vote on an issue.

        Args:
            issue_id: Issue to vote on
            voter: Verified voter identity
            vote_type: "upvote" or "downvote"

        Returns:
            Updated IssueRecord

        Raises:
            ValidationError: unknown vote type
            NotFound: no such issue, or the issue is hidden from the voter
        """
        vote_type = parse_enum(vote_type, VoteType, "vote_type")

        def mutate(record: IssueRecord) -> IssueRecord:
            self._require_visible(record, voter)
            now = self.clock()
            record.votes.cast(VoteEntry(voter_id=voter.actor_id, vote_type=vote_type, voted_at=now))
            record.updated_at = now
            return record

        updated = self.repository.update(issue_id, mutate)
        logger.info(
            f"Issue {issue_id} {vote_type.value}d by {voter.actor_id} (net votes {updated.net_votes})"
        )
        return updated

    def retract_vote(self, issue_id: str, voter: Actor) -> IssueRecord:
        """Remove ``voter``'s vote. Retracting a vote that does not exist is a no-op."""

        def mutate(record: IssueRecord) -> IssueRecord:
            self._require_visible(record, voter)
            if record.votes.retract(voter.actor_id) is not None:
                record.updated_at = self.clock()
            return record

        updated = self.repository.update(issue_id, mutate)
        logger.info(f"Vote on issue {issue_id} retracted by {voter.actor_id}")
        return updated

    def vote_of(self, issue_id: str, voter: Actor) -> Optional[VoteType]:
        """Current vote of ``voter`` on an issue, or None."""
        record = self.repository.find_by_id(issue_id)
        if record is None:
            raise NotFound(issue_id)
        self._require_visible(record, voter)
        return record.votes.vote_of(voter.actor_id)

    @staticmethod
    def _require_visible(record: IssueRecord, voter: Actor) -> None:
        if record.is_hidden and not voter.is_admin:
            raise NotFound(record.id)
