"""
Community Update API Routes

Residents report news about a village (road closures, new buildings, ...).
Image upload handling is out of scope; images are stored as references.
"""
from typing import List, Optional
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import CommunityUpdateDB

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/updates", tags=["updates"])


class UpdateRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    village_name: str = Field(..., min_length=1)
    update_type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    images: List[str] = []


class UpdateEditRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    village_name: Optional[str] = None
    update_type: Optional[str] = None
    description: Optional[str] = None
    images: Optional[List[str]] = None


class UpdateResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    village_name: str
    update_type: str
    description: str
    images: List[str]
    created_at: Optional[str] = None


def _to_response(update: CommunityUpdateDB) -> UpdateResponse:
    return UpdateResponse(
        id=update.id,
        first_name=update.first_name,
        last_name=update.last_name,
        village_name=update.village_name,
        update_type=update.update_type,
        description=update.description,
        images=update.images or [],
        created_at=update.created_at.isoformat() if update.created_at else None,
    )


@router.post("", response_model=UpdateResponse, status_code=status.HTTP_201_CREATED)
async def submit_update(request: UpdateRequest, db: Session = Depends(get_db)):
    update = CommunityUpdateDB(id=str(uuid4()), **request.model_dump())
    db.add(update)
    db.commit()
    db.refresh(update)

    logger.info(f"Community update submitted for {update.village_name}")
    return _to_response(update)


@router.get("", response_model=List[UpdateResponse])
async def list_updates(village_name: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(CommunityUpdateDB)
    if village_name:
        query = query.filter(CommunityUpdateDB.village_name == village_name)
    return [_to_response(u) for u in query.order_by(CommunityUpdateDB.created_at.desc()).all()]


@router.put("/{update_id}", response_model=UpdateResponse)
async def edit_update(update_id: str, request: UpdateEditRequest, db: Session = Depends(get_db)):
    update = db.query(CommunityUpdateDB).filter(CommunityUpdateDB.id == update_id).first()
    if update is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")

    for field_name, value in request.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(update, field_name, value)

    db.commit()
    db.refresh(update)
    return _to_response(update)
