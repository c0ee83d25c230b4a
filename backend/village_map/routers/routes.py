"""
Route API Routes

Routes are ordered paths of at least two points. They share the landmark
verification engine; only geometry and colour differ.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..http_errors import to_http_exception
from ..models.db_models import UserDB, SubmissionKind, SubmissionStatus
from ..models.api_models import (
    CreateRouteRequest, VoteRequest, SubmissionResponse, VerificationSnapshot, CastVoteResponse,
    DEFAULT_ROUTE_COLOR,
)
from ..services.submission_service import SubmissionService, serialize_submission
from ..services.verification import VoteService, VerificationError


router = APIRouter(prefix="/routes", tags=["routes"])


@router.get("", response_model=List[SubmissionResponse])
async def list_routes(
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    village_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List routes, newest first."""
    service = SubmissionService(db)
    routes = service.list_submissions(SubmissionKind.ROUTE, status_filter, village_id)
    return [serialize_submission(s) for s in routes]


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    request: CreateRouteRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = SubmissionService(db)
    try:
        route = service.create_submission(
            kind=SubmissionKind.ROUTE,
            creator_id=current_user.id,
            name=request.title,
            points=[p.model_dump() for p in request.points],
            description=request.description,
            village_id=request.village_id,
            color=request.color or DEFAULT_ROUTE_COLOR,
        )
    except (VerificationError, ValueError) as e:
        raise to_http_exception(e)
    return serialize_submission(route)


@router.get("/{route_id}", response_model=SubmissionResponse)
async def get_route(route_id: str, db: Session = Depends(get_db)):
    service = SubmissionService(db)
    try:
        route = service.get_submission(route_id, SubmissionKind.ROUTE)
    except VerificationError as e:
        raise to_http_exception(e)
    return serialize_submission(route)


@router.get("/{route_id}/verification", response_model=VerificationSnapshot)
async def get_route_verification(route_id: str, db: Session = Depends(get_db)):
    """Live tally with decay applied as of now. Read only."""
    service = VoteService(db)
    try:
        return service.recompute_tally(route_id, SubmissionKind.ROUTE)
    except VerificationError as e:
        raise to_http_exception(e)


@router.put("/{route_id}/vote", response_model=CastVoteResponse)
async def vote_on_route(
    route_id: str,
    request: VoteRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = VoteService(db)
    try:
        result = service.cast_vote(
            submission_id=route_id,
            contributor_id=current_user.id,
            choice=request.vote,
            kind=SubmissionKind.ROUTE,
        )
    except VerificationError as e:
        raise to_http_exception(e)

    message = "Vote updated successfully" if result.replaced_existing else "Vote recorded successfully"
    return CastVoteResponse(**result.to_dict(), message=message)


@router.delete("/{route_id}")
async def delete_route(
    route_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a route. Creator or admin only."""
    service = SubmissionService(db)
    try:
        service.delete_submission(route_id, SubmissionKind.ROUTE, current_user)
    except (VerificationError, PermissionError) as e:
        raise to_http_exception(e)
    return {"success": True, "message": "Route deleted successfully"}
