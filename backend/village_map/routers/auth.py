"""
Village Map - Authentication Router
Handles registration, login, session verification and super contributor requests.
"""
from uuid import uuid4
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import (
    UserDB, UserType, ContributorRole, SuperRequestDB, SuperRequestStatus,
)
from ..auth import hash_password, verify_password, create_access_token, get_current_user, require_admin
from ..services.verification import ContributorProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    user_type: UserType = UserType.LOCAL


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    username: str
    role: str = ContributorRole.USER.value
    user_type: str = UserType.LOCAL.value
    is_super: bool = False


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


class SuperRequestResponse(BaseModel):
    id: str
    user_id: str
    username: str
    email: str
    status: str
    created_at: Optional[str] = None


class SuperRequestDecision(BaseModel):
    status: SuperRequestStatus

    @field_validator('status')
    @classmethod
    def must_be_final(cls, v):
        if v == SuperRequestStatus.PENDING:
            raise ValueError('Decision must be approved or declined')
        return v


def _user_response(user: UserDB) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role or ContributorRole.USER.value,
        user_type=user.user_type or UserType.LOCAL.value,
        is_super=bool(user.is_super),
    )


def _request_response(request: SuperRequestDB) -> SuperRequestResponse:
    return SuperRequestResponse(
        id=request.id,
        user_id=request.user_id,
        username=request.user.username,
        email=request.user.email,
        status=request.status.value,
        created_at=request.created_at.isoformat() if request.created_at else None,
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

def _authenticate(db: Session, email: str, password: str) -> Optional[UserDB]:
    user = db.query(UserDB).filter(UserDB.email == email).first()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Create a contributor. New accounts start as plain users with zero reputation."""
    clash = db.query(UserDB).filter(
        (UserDB.email == request.email) | (UserDB.username == request.username)
    ).first()
    if clash is not None:
        detail = "Email already registered" if clash.email == request.email else "Username already taken"
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    db.add(UserDB(
        id=str(uuid4()),
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
        user_type=request.user_type.value,
    ))
    db.commit()

    logger.info(f"Contributor registered: {request.username} ({request.user_type.value})")
    return MessageResponse(message="User created successfully")


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    user = _authenticate(db, request.email, request.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"Contributor {user.id} logged in")
    return TokenResponse(access_token=create_access_token(user), user=_user_response(user))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user)):
    return _user_response(current_user)


# =============================================================================
# SUPER CONTRIBUTOR REQUESTS
# =============================================================================

@router.post("/request-super", response_model=SuperRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_super(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Ask an administrator for super contributor status.
    One pending request per contributor.
    """
    if current_user.is_super:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a super contributor"
        )

    existing = db.query(SuperRequestDB).filter(
        SuperRequestDB.user_id == current_user.id,
        SuperRequestDB.status == SuperRequestStatus.PENDING,
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have a pending request"
        )

    request = SuperRequestDB(
        id=str(uuid4()),
        user_id=current_user.id,
        status=SuperRequestStatus.PENDING,
    )
    db.add(request)
    db.commit()
    db.refresh(request)

    logger.info(f"Super request submitted by {current_user.id}")
    return _request_response(request)


@router.get("/super-requests", response_model=List[SuperRequestResponse])
async def list_super_requests(
    status_filter: Optional[SuperRequestStatus] = Query(None, alias="status"),
    _: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(SuperRequestDB)
    if status_filter is not None:
        query = query.filter(SuperRequestDB.status == status_filter)
    requests = query.order_by(SuperRequestDB.created_at.desc()).all()
    return [_request_response(r) for r in requests]


@router.patch("/super-requests/{request_id}", response_model=SuperRequestResponse)
async def decide_super_request(
    request_id: str,
    decision: SuperRequestDecision,
    admin: UserDB = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Approve or decline a pending request. Approval grants super status,
    which is never revoked afterwards.
    """
    request = db.query(SuperRequestDB).filter(SuperRequestDB.id == request_id).first()
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    if request.status != SuperRequestStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Request already {request.status.value}"
        )

    if decision.status == SuperRequestStatus.APPROVED:
        ContributorProfileStore(db).promote_to_super(request.user_id)

    request.status = decision.status
    request.decided_by = admin.id
    request.decided_at = datetime.utcnow()
    db.commit()
    db.refresh(request)

    logger.info(f"Super request {request_id} {decision.status.value} by {admin.id}")
    return _request_response(request)
