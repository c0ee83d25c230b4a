"""
Vote Weight Policy

Maps a contributor's profile to the weight their vote carries at the moment
it is cast. The weight is snapshotted onto the vote and never recomputed.

Precedence (first match wins):
1. Super contributor                                   → 4.0
2. At least one judged vote and accuracy ≥ 0.8         → 2.0
3. Reputation score ≥ 70                               → 2.0
4. Everyone else                                       → 1.0
"""
from dataclasses import dataclass, field
from typing import Optional


# =============================================================================
# POLICY CONSTANTS
# =============================================================================

SUPER_WEIGHT = 4.0
TRUSTED_WEIGHT = 2.0
BASE_WEIGHT = 1.0

ACCURACY_THRESHOLD = 0.8
REPUTATION_THRESHOLD = 70

REPUTATION_MIN = 0
REPUTATION_MAX = 100


def clamp_reputation(score: int) -> int:
    """Keep a reputation score within its bounds."""
    return max(REPUTATION_MIN, min(REPUTATION_MAX, int(score)))


@dataclass
class VotingStats:
    """Historical voting accuracy of a contributor."""
    correct_votes: int = 0
    total_votes: int = 0

    @property
    def accuracy(self) -> Optional[float]:
        if self.total_votes <= 0:
            return None
        return self.correct_votes / self.total_votes


@dataclass
class ContributorProfile:
    """The slice of a contributor the verification engine consumes."""
    contributor_id: str
    role: str = "user"
    is_super: bool = False
    reputation_score: int = 0
    voting_stats: VotingStats = field(default_factory=VotingStats)
    verified_landmarks_added: int = 0
    verified_routes_added: int = 0

    @property
    def verified_submissions(self) -> int:
        return self.verified_landmarks_added + self.verified_routes_added


class VoteWeightPolicy:
    """Pure policy; holds no state between calls."""

    def weight_for(self, profile: ContributorProfile) -> float:
        if profile.is_super or profile.role == "super":
            return SUPER_WEIGHT

        accuracy = profile.voting_stats.accuracy
        if accuracy is not None and accuracy >= ACCURACY_THRESHOLD:
            return TRUSTED_WEIGHT

        if profile.reputation_score >= REPUTATION_THRESHOLD:
            return TRUSTED_WEIGHT

        return BASE_WEIGHT
