"""
Verification Engine

AUTHORITY: SYSTEM
Recomputes a submission's tally and status from its full vote list.

The state machine is level-triggered: every call re-derives the status from
scratch, so a submission may move out of VERIFIED again when later votes (or
decay of earlier ones) shift the balance. One-time side effects are decided
by comparing the previous and new status inside the same recomputation and
are carried out by the vote service, never here.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ...models.db_models import SubmissionStatus, VoteChoice
from .decay import decay_factor, hours_between


# =============================================================================
# THRESHOLD CONFIGURATION
# =============================================================================

BASE_REQUIRED_WEIGHT = 5.0
REQUIRED_WEIGHT_PER_VOTE = 0.2
VERIFY_AGREEMENT_RATIO = 0.8
REJECT_RATIO = 0.6
DISPUTE_MAX_MARGIN = 2.0
DISPUTE_MIN_TOTAL = 3.0
PARTICIPATION_HEADROOM = 1.5
MAX_CONFIDENCE = 100.0


@dataclass
class VerificationTally:
    """Weighted, decayed tally of a submission's votes at one instant."""
    total_weight: float
    yes_weight: float
    no_weight: float
    vote_count: int
    required_weight: float
    confidence_score: float
    status: SubmissionStatus

    @property
    def verified(self) -> bool:
        return self.status == SubmissionStatus.VERIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "verified": self.verified,
            "confidence_score": self.confidence_score,
            "total_weight": self.total_weight,
            "yes_weight": self.yes_weight,
            "no_weight": self.no_weight,
        }


@dataclass
class StatusChange:
    """Outcome of applying a tally to a submission."""
    previous_status: SubmissionStatus
    new_status: SubmissionStatus
    first_verification: bool = False

    @property
    def changed(self) -> bool:
        return self.previous_status != self.new_status


class VerificationEngine:
    """Pure tally and status computation; no persistence."""

    def required_weight(self, vote_count: int) -> float:
        """Dynamic threshold: each vote cast raises the bar slightly."""
        return BASE_REQUIRED_WEIGHT + REQUIRED_WEIGHT_PER_VOTE * max(0, vote_count)

    def tally(self, votes: Iterable[Any], now: Optional[datetime] = None) -> VerificationTally:
        """
        Compute the tally for a vote list.

        Each vote needs `choice`, `weight` and `cast_at`; a missing timestamp
        counts as cast at `now`.
        """
        now = now or datetime.utcnow()
        total_weight = 0.0
        yes_weight = 0.0
        no_weight = 0.0
        vote_count = 0

        for vote in votes:
            vote_count += 1
            cast_at = vote.cast_at or now
            effective = (vote.weight or 1.0) * decay_factor(hours_between(now, cast_at))
            total_weight += effective
            if vote.choice == VoteChoice.YES:
                yes_weight += effective
            elif vote.choice == VoteChoice.NO:
                no_weight += effective

        required = self.required_weight(vote_count)
        safe_total = max(1.0, total_weight)

        participation = min(1.0, total_weight / (required * PARTICIPATION_HEADROOM)) * 50
        agreement = (yes_weight / safe_total) * 50
        confidence = min(MAX_CONFIDENCE, participation + agreement)

        status = self.determine_status(total_weight, yes_weight, no_weight, required)

        return VerificationTally(
            total_weight=total_weight,
            yes_weight=yes_weight,
            no_weight=no_weight,
            vote_count=vote_count,
            required_weight=required,
            confidence_score=confidence,
            status=status,
        )

    def determine_status(
        self,
        total_weight: float,
        yes_weight: float,
        no_weight: float,
        required_weight: float,
    ) -> SubmissionStatus:
        """Status transition rules, evaluated top to bottom."""
        safe_total = max(1.0, total_weight)

        if total_weight >= required_weight and (yes_weight / safe_total) >= VERIFY_AGREEMENT_RATIO:
            return SubmissionStatus.VERIFIED

        if no_weight >= required_weight * REJECT_RATIO:
            return SubmissionStatus.REJECTED

        if abs(yes_weight - no_weight) < DISPUTE_MAX_MARGIN and total_weight >= DISPUTE_MIN_TOTAL:
            return SubmissionStatus.DISPUTED

        return SubmissionStatus.PENDING

    def recompute_tally(self, submission, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Read-path recomputation. Does not touch the submission."""
        return self.tally(submission.votes, now).to_dict()

    def apply(self, submission, tally: VerificationTally, now: Optional[datetime] = None) -> StatusChange:
        """
        Write a tally onto a submission's snapshot columns.

        `first_verification` is true only on the transition into VERIFIED of
        a submission that has never been verified before.
        """
        now = now or datetime.utcnow()
        previous = submission.status or SubmissionStatus.PENDING

        submission.status = tally.status
        submission.verified = tally.verified
        submission.total_weight = tally.total_weight
        submission.yes_weight = tally.yes_weight
        submission.no_weight = tally.no_weight
        submission.confidence_score = tally.confidence_score

        first_verification = (
            previous != SubmissionStatus.VERIFIED
            and tally.status == SubmissionStatus.VERIFIED
            and submission.first_verified_at is None
        )
        if first_verification:
            submission.first_verified_at = now

        return StatusChange(
            previous_status=previous,
            new_status=tally.status,
            first_verification=first_verification,
        )
