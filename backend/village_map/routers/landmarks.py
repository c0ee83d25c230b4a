"""
Landmark API Routes

Landmarks are single-point submissions verified by weighted community votes.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..http_errors import to_http_exception
from ..models.db_models import UserDB, SubmissionKind, SubmissionStatus
from ..models.api_models import (
    CreateLandmarkRequest, VoteRequest, SubmissionResponse, VerificationSnapshot, CastVoteResponse,
)
from ..services.submission_service import SubmissionService, serialize_submission
from ..services.verification import VoteService, VerificationError


router = APIRouter(prefix="/landmarks", tags=["landmarks"])


@router.get("", response_model=List[SubmissionResponse])
async def list_landmarks(
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    village_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List landmarks, newest first."""
    service = SubmissionService(db)
    landmarks = service.list_submissions(SubmissionKind.LANDMARK, status_filter, village_id)
    return [serialize_submission(s) for s in landmarks]


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_landmark(
    request: CreateLandmarkRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Propose a new landmark. It starts pending with no votes."""
    service = SubmissionService(db)
    try:
        landmark = service.create_submission(
            kind=SubmissionKind.LANDMARK,
            creator_id=current_user.id,
            name=request.name,
            points=[{"lat": request.lat, "lon": request.lon}],
            description=request.description,
            village_id=request.village_id,
        )
    except (VerificationError, ValueError) as e:
        raise to_http_exception(e)
    return serialize_submission(landmark)


@router.get("/{landmark_id}", response_model=SubmissionResponse)
async def get_landmark(landmark_id: str, db: Session = Depends(get_db)):
    service = SubmissionService(db)
    try:
        landmark = service.get_submission(landmark_id, SubmissionKind.LANDMARK)
    except VerificationError as e:
        raise to_http_exception(e)
    return serialize_submission(landmark)


@router.get("/{landmark_id}/verification", response_model=VerificationSnapshot)
async def get_landmark_verification(landmark_id: str, db: Session = Depends(get_db)):
    """
    Live tally with decay applied as of now.

    The stored snapshot reflects the last committed vote; this recomputes
    without writing anything.
    """
    service = VoteService(db)
    try:
        return service.recompute_tally(landmark_id, SubmissionKind.LANDMARK)
    except VerificationError as e:
        raise to_http_exception(e)


@router.put("/{landmark_id}/vote", response_model=CastVoteResponse)
async def vote_on_landmark(
    landmark_id: str,
    request: VoteRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cast or replace the current contributor's vote."""
    service = VoteService(db)
    try:
        result = service.cast_vote(
            submission_id=landmark_id,
            contributor_id=current_user.id,
            choice=request.vote,
            kind=SubmissionKind.LANDMARK,
        )
    except VerificationError as e:
        raise to_http_exception(e)

    message = "Vote updated successfully" if result.replaced_existing else "Vote recorded successfully"
    return CastVoteResponse(**result.to_dict(), message=message)


@router.delete("/{landmark_id}")
async def delete_landmark(
    landmark_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a landmark. Creator or admin only."""
    service = SubmissionService(db)
    try:
        service.delete_submission(landmark_id, SubmissionKind.LANDMARK, current_user)
    except (VerificationError, PermissionError) as e:
        raise to_http_exception(e)
    return {"success": True, "message": "Landmark deleted successfully"}
