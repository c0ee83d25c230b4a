"""
Vote Service

Main orchestration for casting a vote on a landmark or route.

A cast vote is one serializable unit:
    load profile + submission → weigh → replace vote → recompute → persist
    → first-verification counter / promotion → outcome settlement → commit

Concurrent votes on the same submission are detected by the submission's
optimistic version (StaleDataError) or by the unique (submission, user)
vote constraint (IntegrityError on that constraint only). Either way the unit
is rolled back and replayed against the latest committed state, up to
VOTE_MAX_RETRIES times. Any other integrity violation is a PersistenceFailure.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import os

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models.db_models import (
    SubmissionDB, SubmissionKind, SubmissionStatus, VoteChoice, VOTE_UNIQUE_CONSTRAINT,
)
from .engine import VerificationEngine, VerificationTally
from .errors import (
    VerificationError, InvalidChoice, ConcurrencyConflict, PersistenceFailure,
)
from .stores import ContributorProfileStore, SubmissionStore
from .weight_policy import VoteWeightPolicy

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

VOTE_MAX_RETRIES = int(os.getenv("VOTE_MAX_RETRIES", "3"))

PROMOTION_THRESHOLD = 10          # Verified landmarks + routes needed for super status
VERIFIED_SUBMISSION_REPUTATION = 5
CORRECT_VOTE_REPUTATION = 1
INCORRECT_VOTE_REPUTATION = -1

FINAL_OUTCOMES = (SubmissionStatus.VERIFIED, SubmissionStatus.REJECTED)


@dataclass
class CastVoteResult:
    """What a cast vote returns to the serving layer."""
    submission_id: str
    tally: VerificationTally
    applied_weight: float
    replaced_existing: bool
    creator_promoted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "status": self.tally.status.value,
            "verified": self.tally.verified,
            "total_weight": self.tally.total_weight,
            "yes_weight": self.tally.yes_weight,
            "no_weight": self.tally.no_weight,
            "confidence_score": self.tally.confidence_score,
            "applied_weight": self.applied_weight,
            "required_weight": self.tally.required_weight,
            "vote_count": self.tally.vote_count,
            "replaced_existing": self.replaced_existing,
        }


def is_duplicate_vote(error: IntegrityError) -> bool:
    """True when the unique (submission, user) vote constraint fired."""
    diag = getattr(error.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint:
        return constraint == VOTE_UNIQUE_CONSTRAINT
    message = str(error.orig)
    # SQLite reports the columns instead of the constraint name
    return VOTE_UNIQUE_CONSTRAINT in message or "votes.submission_id, votes.user_id" in message


def parse_choice(choice) -> VoteChoice:
    """Normalize a vote choice or raise InvalidChoice."""
    if isinstance(choice, VoteChoice):
        return choice
    if isinstance(choice, str):
        try:
            return VoteChoice(choice.strip().lower())
        except ValueError:
            pass
    raise InvalidChoice(choice)


class VoteService:
    """
    Cast-vote orchestration.

    Contributor identity is always passed in explicitly; the service never
    looks up a "current user" on its own.
    """

    def __init__(
        self,
        db_session: Session,
        policy: Optional[VoteWeightPolicy] = None,
        engine: Optional[VerificationEngine] = None,
        max_retries: int = VOTE_MAX_RETRIES,
    ):
        self.db = db_session
        self.policy = policy or VoteWeightPolicy()
        self.engine = engine or VerificationEngine()
        self.submissions = SubmissionStore(db_session)
        self.profiles = ContributorProfileStore(db_session)
        self.max_retries = max(1, max_retries)

    # =========================================================================
    # CAST VOTE
    # =========================================================================

    def cast_vote(
        self,
        submission_id: str,
        contributor_id: str,
        choice,
        kind: Optional[SubmissionKind] = None,
        now: Optional[datetime] = None,
    ) -> CastVoteResult:
        """
        Cast or replace a contributor's vote and commit the recomputed state.

        Raises:
            InvalidChoice: choice outside {yes, no}
            ContributorNotFound / SubmissionNotFound: unknown identifiers
            ConcurrencyConflict: optimistic retries exhausted
            PersistenceFailure: store error, transaction rolled back
        """
        vote_choice = parse_choice(choice)

        for attempt in range(1, self.max_retries + 1):
            try:
                result = self._apply_vote(submission_id, contributor_id, vote_choice, kind, now)
                self.db.commit()
            except StaleDataError as e:
                self.db.rollback()
                self._log_conflict(submission_id, attempt, e)
                continue
            except IntegrityError as e:
                self.db.rollback()
                if not is_duplicate_vote(e):
                    logger.error(f"Vote violated an integrity constraint on submission {submission_id}: {e.orig}")
                    raise PersistenceFailure(str(e)) from e
                self._log_conflict(submission_id, attempt, e)
                continue
            except VerificationError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Vote persistence failed for submission {submission_id}: {e}")
                raise PersistenceFailure(str(e)) from e

            return result

        raise ConcurrencyConflict(submission_id, self.max_retries)

    def _log_conflict(self, submission_id: str, attempt: int, error: Exception) -> None:
        logger.warning(
            f"Vote conflict on submission {submission_id} "
            f"(attempt {attempt}/{self.max_retries}): {error.__class__.__name__}"
        )

    def _apply_vote(
        self,
        submission_id: str,
        contributor_id: str,
        choice: VoteChoice,
        kind: Optional[SubmissionKind],
        now: Optional[datetime],
    ) -> CastVoteResult:
        now = now or datetime.utcnow()

        profile = self.profiles.get_profile(contributor_id)
        submission = self.submissions.get_submission_with_votes(submission_id, kind)

        weight = self.policy.weight_for(profile)
        _, replaced = self.submissions.upsert_vote(submission, contributor_id, choice, weight, now)

        tally = self.engine.tally(submission.votes, now)
        change = self.engine.apply(submission, tally, now)
        self.submissions.save_submission(submission, now)

        if change.changed:
            logger.info(
                f"Submission {submission.id}: {change.previous_status.value} -> {change.new_status.value} "
                f"(total={tally.total_weight:.2f}, required={tally.required_weight:.2f})"
            )

        promoted = False
        if change.first_verification:
            promoted = self._on_first_verification(submission)

        if tally.status in FINAL_OUTCOMES and submission.outcome_settled_at is None:
            self._settle_outcome(submission, tally.status, now)

        self.db.flush()

        return CastVoteResult(
            submission_id=submission.id,
            tally=tally,
            applied_weight=weight,
            replaced_existing=replaced,
            creator_promoted=promoted,
        )

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    def _on_first_verification(self, submission: SubmissionDB) -> bool:
        """Credit the creator once per submission. Returns True if this promoted them."""
        creator = self.profiles.increment_verified_count(submission.created_by, submission.kind)
        self.profiles.adjust_reputation(submission.created_by, VERIFIED_SUBMISSION_REPUTATION)
        logger.info(f"Submission {submission.id} verified for the first time; credited {submission.created_by}")

        verified_total = (creator.verified_landmarks_added or 0) + (creator.verified_routes_added or 0)
        if verified_total >= PROMOTION_THRESHOLD and not creator.is_super:
            return self.profiles.promote_to_super(submission.created_by)
        return False

    def _settle_outcome(self, submission: SubmissionDB, outcome: SubmissionStatus, now: datetime) -> None:
        """Judge every vote against the first final outcome. Runs once per submission."""
        submission.outcome_settled_at = now
        for vote in submission.votes:
            correct = (vote.choice == VoteChoice.YES) == (outcome == SubmissionStatus.VERIFIED)
            self.profiles.record_vote_judgement(vote.user_id, correct)
            self.profiles.adjust_reputation(
                vote.user_id,
                CORRECT_VOTE_REPUTATION if correct else INCORRECT_VOTE_REPUTATION,
            )
        logger.info(f"Settled {len(submission.votes)} votes on submission {submission.id} as {outcome.value}")

    # =========================================================================
    # READ PATH
    # =========================================================================

    def recompute_tally(
        self,
        submission_id: str,
        kind: Optional[SubmissionKind] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Fresh tally for display; nothing is written."""
        submission = self.submissions.get_submission_with_votes(submission_id, kind)
        return self.engine.recompute_tally(submission, now)
