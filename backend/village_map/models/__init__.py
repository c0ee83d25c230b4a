"""Village Map - Data Models"""
from .db_models import (
    # Enums
    ContributorRole, UserType, SubmissionKind, SubmissionStatus, VoteChoice, SuperRequestStatus,
    # Tables
    UserDB, SuperRequestDB, VillageDB, SubmissionDB, VoteDB, CommunityUpdateDB,
)

__all__ = [
    "ContributorRole", "UserType", "SubmissionKind", "SubmissionStatus", "VoteChoice", "SuperRequestStatus",
    "UserDB", "SuperRequestDB", "VillageDB", "SubmissionDB", "VoteDB", "CommunityUpdateDB",
]
