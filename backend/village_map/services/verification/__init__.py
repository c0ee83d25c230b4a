"""
Crowd Verification Services

Weighted, decay-aware verification of community landmarks and routes.

- VoteWeightPolicy: contributor profile → vote weight
- decay_factor: vote age → attenuation
- VerificationEngine: votes → tally, confidence and status
- SubmissionStore / ContributorProfileStore: SQLAlchemy adapters
- VoteService: atomic cast-vote with optimistic retry
"""

from .weight_policy import VoteWeightPolicy, ContributorProfile, VotingStats
from .decay import decay_factor, DECAY_RATE
from .engine import VerificationEngine, VerificationTally, StatusChange
from .stores import SubmissionStore, ContributorProfileStore
from .vote_service import VoteService, CastVoteResult, parse_choice
from .errors import (
    VerificationError,
    NotFound,
    SubmissionNotFound,
    ContributorNotFound,
    InvalidChoice,
    ConcurrencyConflict,
    PersistenceFailure,
)

__all__ = [
    'VoteWeightPolicy',
    'ContributorProfile',
    'VotingStats',
    'decay_factor',
    'DECAY_RATE',
    'VerificationEngine',
    'VerificationTally',
    'StatusChange',
    'SubmissionStore',
    'ContributorProfileStore',
    'VoteService',
    'CastVoteResult',
    'parse_choice',
    # Errors
    'VerificationError',
    'NotFound',
    'SubmissionNotFound',
    'ContributorNotFound',
    'InvalidChoice',
    'ConcurrencyConflict',
    'PersistenceFailure',
]
