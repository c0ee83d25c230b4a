"""
Village Map - API Data Models

Pydantic request/response models shared by the landmark and route routers.
"""
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

HEX_COLOR = re.compile(r'^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$')
DEFAULT_ROUTE_COLOR = "#3A86FF"


# =============================================================================
# GEOMETRY
# =============================================================================

class Point(BaseModel):
    """A WGS84 coordinate."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# =============================================================================
# REQUESTS
# =============================================================================

class CreateLandmarkRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    description: Optional[str] = None
    village_id: Optional[str] = None

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Name is required')
        return v


class CreateRouteRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    points: List[Point] = Field(..., description="Ordered route geometry, at least 2 points")
    color: Optional[str] = None
    description: Optional[str] = None
    village_id: Optional[str] = None

    @field_validator('title')
    @classmethod
    def strip_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Title is required')
        return v

    @field_validator('points')
    @classmethod
    def validate_points(cls, v):
        if len(v) < 2:
            raise ValueError('Title and at least 2 points are required')
        return v

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        if v is not None and not HEX_COLOR.match(v):
            raise ValueError(f'{v} is not a valid color!')
        return v


class VoteRequest(BaseModel):
    """Any JSON value is accepted here; the vote service rejects anything but yes/no with a 400."""
    vote: Any = None


# =============================================================================
# RESPONSES
# =============================================================================

class VerificationSnapshot(BaseModel):
    status: str
    verified: bool
    confidence_score: float
    total_weight: float
    yes_weight: float
    no_weight: float


class VoteEntry(BaseModel):
    user_id: str
    vote: str
    weight: float
    timestamp: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: str
    kind: str
    name: str
    description: Optional[str] = None
    village_id: Optional[str] = None
    created_by: str
    points: List[Point]
    color: Optional[str] = None
    status: str
    verified: bool
    verification: VerificationSnapshot
    votes: List[VoteEntry] = []
    created_at: Optional[str] = None


class CastVoteResponse(BaseModel):
    submission_id: str
    status: str
    verified: bool
    total_weight: float
    yes_weight: float
    no_weight: float
    confidence_score: float
    applied_weight: float
    required_weight: float
    vote_count: int
    replaced_existing: bool
    message: str
