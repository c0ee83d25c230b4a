"""
Village Map - Users Router
Contributor profiles: reputation, verified contributions and current vote weight.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB
from ..auth import get_current_user, require_admin
from ..services.verification import VoteWeightPolicy
from ..services.verification.stores import to_profile

router = APIRouter(prefix="/users", tags=["users"])


class ContributorProfileResponse(BaseModel):
    """Public contributor profile. Never includes credentials."""
    id: str
    username: str
    role: str
    user_type: str
    is_super: bool
    reputation_score: int
    verified_landmarks_added: int
    verified_routes_added: int
    contributions_verified: int
    votes_judged: int
    correct_votes: int
    voting_accuracy: Optional[float] = None
    vote_weight: float
    created_at: Optional[str] = None


class ContributorListResponse(BaseModel):
    users: List[ContributorProfileResponse]
    total: int


def _profile_response(user: UserDB) -> ContributorProfileResponse:
    profile = to_profile(user)
    return ContributorProfileResponse(
        id=user.id,
        username=user.username,
        role=profile.role,
        user_type=user.user_type or "local",
        is_super=profile.is_super,
        reputation_score=profile.reputation_score,
        verified_landmarks_added=profile.verified_landmarks_added,
        verified_routes_added=profile.verified_routes_added,
        contributions_verified=user.contributions_verified or 0,
        votes_judged=profile.voting_stats.total_votes,
        correct_votes=profile.voting_stats.correct_votes,
        voting_accuracy=profile.voting_stats.accuracy,
        vote_weight=VoteWeightPolicy().weight_for(profile),
        created_at=user.created_at.isoformat() if user.created_at else None,
    )


@router.get("/me/profile", response_model=ContributorProfileResponse)
async def get_my_profile(current_user: UserDB = Depends(get_current_user)):
    """The weight shown is what the contributor's next vote would carry."""
    return _profile_response(current_user)


@router.get("", response_model=ContributorListResponse)
async def list_users(
    _: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    users = db.query(UserDB).order_by(UserDB.created_at.desc()).all()
    return ContributorListResponse(users=[_profile_response(u) for u in users], total=len(users))


@router.get("/{user_id}", response_model=ContributorProfileResponse)
async def get_user(user_id: str, db: Session = Depends(get_db)):
    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _profile_response(user)
