"""
Village API Routes

Plain CRUD for the villages shown on the map.
"""
from datetime import datetime
from typing import List, Optional
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import VillageDB
from ..models.api_models import Point

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/villages", tags=["villages"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class VillageRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str
    images: List[str] = []
    location: Optional[Point] = None


class VillageUpdateRequest(BaseModel):
    """All fields optional - only provided fields are updated."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    location: Optional[Point] = None


class VillageResponse(BaseModel):
    id: str
    name: str
    description: str
    images: List[str]
    location: Point
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class VillageListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[VillageResponse]


def _to_response(village: VillageDB) -> VillageResponse:
    return VillageResponse(
        id=village.id,
        name=village.name,
        description=village.description,
        images=village.images or [],
        location=Point(lat=village.latitude or 0.0, lon=village.longitude or 0.0),
        created_at=village.created_at.isoformat() if village.created_at else None,
        updated_at=village.updated_at.isoformat() if village.updated_at else None,
    )


def _get_village_or_404(db: Session, village_id: str) -> VillageDB:
    village = db.query(VillageDB).filter(VillageDB.id == village_id).first()
    if village is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Village not found")
    return village


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("", response_model=VillageListResponse)
async def list_villages(db: Session = Depends(get_db)):
    villages = db.query(VillageDB).order_by(VillageDB.name).all()
    return VillageListResponse(count=len(villages), data=[_to_response(v) for v in villages])


@router.get("/{village_id}", response_model=VillageResponse)
async def get_village(village_id: str, db: Session = Depends(get_db)):
    return _to_response(_get_village_or_404(db, village_id))


@router.post("", response_model=VillageResponse, status_code=status.HTTP_201_CREATED)
async def create_village(request: VillageRequest, db: Session = Depends(get_db)):
    location = request.location or Point(lat=0.0, lon=0.0)
    village = VillageDB(
        id=str(uuid4()),
        name=request.name,
        description=request.description,
        images=request.images,
        latitude=location.lat,
        longitude=location.lon,
    )
    db.add(village)
    db.commit()
    db.refresh(village)

    logger.info(f"Village created: {village.name}")
    return _to_response(village)


@router.put("/{village_id}", response_model=VillageResponse)
async def update_village(village_id: str, request: VillageUpdateRequest, db: Session = Depends(get_db)):
    village = _get_village_or_404(db, village_id)

    if request.name is not None:
        village.name = request.name
    if request.description is not None:
        village.description = request.description
    if request.images is not None:
        village.images = request.images
    if request.location is not None:
        village.latitude = request.location.lat
        village.longitude = request.location.lon
    village.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(village)
    return _to_response(village)


@router.delete("/{village_id}")
async def delete_village(village_id: str, db: Session = Depends(get_db)):
    village = _get_village_or_404(db, village_id)
    db.delete(village)
    db.commit()

    logger.info(f"Village deleted: {village_id}")
    return {"success": True, "message": "Village deleted successfully"}
