"""
Submission Service

Plain CRUD for landmarks and routes. Verification state is never written
here: submissions are created pending with no votes, and only the vote
service moves them through the state machine.
"""
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

from sqlalchemy.orm import Session, selectinload

from ..models.db_models import (
    SubmissionDB, SubmissionKind, SubmissionStatus, UserDB, VillageDB, ContributorRole,
)
from .verification.errors import NotFound, SubmissionNotFound

logger = logging.getLogger(__name__)

MIN_POINTS = {
    SubmissionKind.LANDMARK: 1,
    SubmissionKind.ROUTE: 2,
}
MAX_POINTS = {
    SubmissionKind.LANDMARK: 1,
    SubmissionKind.ROUTE: None,
}


class SubmissionService:
    """Creation, listing and deletion of landmarks and routes."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create_submission(
        self,
        kind: SubmissionKind,
        creator_id: str,
        name: str,
        points: List[Dict[str, float]],
        description: Optional[str] = None,
        village_id: Optional[str] = None,
        color: Optional[str] = None,
    ) -> SubmissionDB:
        """
        Create a pending submission with an empty vote list.

        Raises ValueError on bad geometry and NotFound on an unknown village.
        """
        minimum = MIN_POINTS[kind]
        maximum = MAX_POINTS[kind]
        if len(points) < minimum or (maximum is not None and len(points) > maximum):
            raise ValueError(f"A {kind.value} needs {'exactly' if maximum else 'at least'} {minimum} point(s)")

        if village_id is not None:
            village = self.db.query(VillageDB).filter(VillageDB.id == village_id).first()
            if village is None:
                raise NotFound(f"Village {village_id} not found")

        submission = SubmissionDB(
            id=str(uuid4()),
            kind=kind,
            name=name,
            description=description,
            village_id=village_id,
            created_by=creator_id,
            points=[{"lat": p["lat"], "lon": p["lon"]} for p in points],
            color=color,
            status=SubmissionStatus.PENDING,
            verified=False,
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)

        logger.info(f"{kind.value.capitalize()} {submission.id} created by {creator_id}")
        return submission

    def list_submissions(
        self,
        kind: SubmissionKind,
        status: Optional[SubmissionStatus] = None,
        village_id: Optional[str] = None,
    ) -> List[SubmissionDB]:
        query = (
            self.db.query(SubmissionDB)
            .options(selectinload(SubmissionDB.votes))
            .filter(SubmissionDB.kind == kind)
        )
        if status is not None:
            query = query.filter(SubmissionDB.status == status)
        if village_id is not None:
            query = query.filter(SubmissionDB.village_id == village_id)
        return query.order_by(SubmissionDB.created_at.desc()).all()

    def get_submission(self, submission_id: str, kind: SubmissionKind) -> SubmissionDB:
        submission = (
            self.db.query(SubmissionDB)
            .options(selectinload(SubmissionDB.votes))
            .filter(SubmissionDB.id == submission_id, SubmissionDB.kind == kind)
            .first()
        )
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    def delete_submission(self, submission_id: str, kind: SubmissionKind, actor: UserDB) -> None:
        """Only the creator or an administrator may delete. Votes go with it."""
        submission = self.get_submission(submission_id, kind)
        if submission.created_by != actor.id and actor.role != ContributorRole.ADMIN.value:
            raise PermissionError(
                f"Unauthorized: You can only delete your own {kind.value}s unless you are an admin"
            )
        self.db.delete(submission)
        self.db.commit()
        logger.info(f"{kind.value.capitalize()} {submission_id} deleted by {actor.id}")


def serialize_submission(submission: SubmissionDB) -> Dict[str, Any]:
    """Shape a submission for SubmissionResponse."""
    status = submission.status or SubmissionStatus.PENDING
    return {
        "id": submission.id,
        "kind": submission.kind.value,
        "name": submission.name,
        "description": submission.description,
        "village_id": submission.village_id,
        "created_by": submission.created_by,
        "points": submission.points or [],
        "color": submission.color,
        "status": status.value,
        "verified": bool(submission.verified),
        "verification": {
            "status": status.value,
            "verified": bool(submission.verified),
            "confidence_score": submission.confidence_score or 0.0,
            "total_weight": submission.total_weight or 0.0,
            "yes_weight": submission.yes_weight or 0.0,
            "no_weight": submission.no_weight or 0.0,
        },
        "votes": [
            {
                "user_id": v.user_id,
                "vote": v.choice.value,
                "weight": v.weight,
                "timestamp": v.cast_at.isoformat() if v.cast_at else None,
            }
            for v in submission.votes
        ],
        "created_at": submission.created_at.isoformat() if submission.created_at else None,
    }
