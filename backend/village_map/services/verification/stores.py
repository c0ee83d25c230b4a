"""
Persistence adapters for the verification engine.

SubmissionStore and ContributorProfileStore wrap a SQLAlchemy session.
Neither commits: the vote service owns the transaction boundary so that a
cast vote is written as a single unit or not at all.
"""
from datetime import datetime
from typing import Optional, Tuple
from uuid import uuid4
import logging

from sqlalchemy import case
from sqlalchemy.orm import Session, selectinload

from ...models.db_models import (
    UserDB, SubmissionDB, VoteDB, SubmissionKind, VoteChoice, ContributorRole,
)
from .errors import SubmissionNotFound, ContributorNotFound
from .weight_policy import ContributorProfile, VotingStats, REPUTATION_MAX, REPUTATION_MIN

logger = logging.getLogger(__name__)


class ContributorProfileStore:
    """
    Reads and mutates contributor reputation attributes.

    Counters are incremented in SQL (`col = col + n`), never read-modify-write
    in Python, so concurrent transactions touching the same contributor (two
    of their submissions verified at once, or one voter judged on several
    submissions) cannot lose an update. Reads use populate_existing so a
    contributor already in the session reflects those writes.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_user(self, contributor_id: str) -> UserDB:
        user = (
            self.db.query(UserDB)
            .populate_existing()
            .filter(UserDB.id == contributor_id)
            .first()
        )
        if user is None:
            raise ContributorNotFound(contributor_id)
        return user

    def _update(self, contributor_id: str, values: dict, *criteria) -> int:
        return (
            self.db.query(UserDB)
            .filter(UserDB.id == contributor_id, *criteria)
            .update(values, synchronize_session=False)
        )

    def get_profile(self, contributor_id: str) -> ContributorProfile:
        user = self._get_user(contributor_id)
        return to_profile(user)

    def increment_verified_count(self, contributor_id: str, kind: SubmissionKind) -> UserDB:
        """Count one more verified submission for the creator."""
        counter = UserDB.verified_routes_added if kind == SubmissionKind.ROUTE else UserDB.verified_landmarks_added
        updated = self._update(contributor_id, {
            counter: counter + 1,
            UserDB.contributions_verified: UserDB.contributions_verified + 1,
        })
        if not updated:
            raise ContributorNotFound(contributor_id)
        return self._get_user(contributor_id)

    def promote_to_super(self, contributor_id: str) -> bool:
        """
        Grant super status. Returns False if already super.

        Administrators keep their role; only the flag is set.
        """
        self._get_user(contributor_id)
        promoted = self._update(
            contributor_id,
            {
                UserDB.is_super: True,
                UserDB.role: case(
                    (UserDB.role == ContributorRole.USER.value, ContributorRole.SUPER.value),
                    else_=UserDB.role,
                ),
            },
            UserDB.is_super.is_(False),
        )
        if promoted:
            logger.info(f"Contributor {contributor_id} promoted to super")
        return bool(promoted)

    def adjust_reputation(self, contributor_id: str, delta: int) -> int:
        """Shift reputation by `delta`, clamped to its bounds in the UPDATE itself."""
        shifted = UserDB.reputation_score + delta
        updated = self._update(contributor_id, {
            UserDB.reputation_score: case(
                (shifted > REPUTATION_MAX, REPUTATION_MAX),
                (shifted < REPUTATION_MIN, REPUTATION_MIN),
                else_=shifted,
            ),
        })
        if not updated:
            raise ContributorNotFound(contributor_id)
        return self._get_user(contributor_id).reputation_score

    def record_vote_judgement(self, contributor_id: str, correct: bool) -> None:
        """Record that one of the contributor's votes was judged against an outcome."""
        updated = self._update(contributor_id, {
            UserDB.votes_judged: UserDB.votes_judged + 1,
            UserDB.correct_votes: UserDB.correct_votes + (1 if correct else 0),
        })
        if not updated:
            raise ContributorNotFound(contributor_id)


def to_profile(user: UserDB) -> ContributorProfile:
    return ContributorProfile(
        contributor_id=user.id,
        role=user.role or ContributorRole.USER.value,
        is_super=bool(user.is_super),
        reputation_score=user.reputation_score or 0,
        voting_stats=VotingStats(
            correct_votes=user.correct_votes or 0,
            total_votes=user.votes_judged or 0,
        ),
        verified_landmarks_added=user.verified_landmarks_added or 0,
        verified_routes_added=user.verified_routes_added or 0,
    )


class SubmissionStore:
    """Loads submissions with their votes and stages vote changes."""

    def __init__(self, db: Session):
        self.db = db

    def get_submission_with_votes(
        self,
        submission_id: str,
        kind: Optional[SubmissionKind] = None,
    ) -> SubmissionDB:
        query = (
            self.db.query(SubmissionDB)
            .options(selectinload(SubmissionDB.votes))
            .populate_existing()
            .filter(SubmissionDB.id == submission_id)
        )
        if kind is not None:
            query = query.filter(SubmissionDB.kind == kind)
        submission = query.first()
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    def upsert_vote(
        self,
        submission: SubmissionDB,
        contributor_id: str,
        choice: VoteChoice,
        weight: float,
        now: datetime,
    ) -> Tuple[VoteDB, bool]:
        """
        Replace the contributor's vote on the submission, or add one.

        Returns (vote, replaced_existing).
        """
        for vote in submission.votes:
            if vote.user_id == contributor_id:
                vote.choice = choice
                vote.weight = weight
                vote.cast_at = now
                return vote, True

        vote = VoteDB(
            id=str(uuid4()),
            user_id=contributor_id,
            choice=choice,
            weight=weight,
            cast_at=now,
        )
        submission.votes.append(vote)
        return vote, False

    def save_submission(self, submission: SubmissionDB, now: datetime) -> None:
        """
        Flush the submission and its votes.

        The revision bump guarantees an UPDATE of the submission row, which
        is what makes the optimistic version check fire even when the tally
        itself did not change.
        """
        submission.vote_revision = (submission.vote_revision or 0) + 1
        submission.last_vote_at = now
        self.db.add(submission)
        self.db.flush()
