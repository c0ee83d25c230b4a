"""
Village Map - Authentication

Contributors authenticate with a bearer JWT. The token carries the
contributor id plus role claims for the client. Only the id is trusted: every
request resolves the contributor from the database, so role and super status
are always read fresh and a promotion takes effect without re-login.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .models.db_models import UserDB, ContributorRole

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "village-map-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))

bearer_scheme = HTTPBearer()


# =============================================================================
# PASSWORDS
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# =============================================================================
# TOKENS
# =============================================================================

def create_access_token(user: UserDB, expires_in: Optional[timedelta] = None) -> str:
    """Sign a token for a contributor."""
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + (expires_in or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    claims = {
        "sub": user.id,
        "email": user.email,
        "role": user.role or ContributorRole.USER.value,
        "is_super": bool(user.is_super),
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def read_token(token: str) -> str:
    """
    Verify signature and expiry and return the contributor id.

    Raises a 401 HTTPException for expired, forged or incomplete tokens.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    if not payload.get("sub"):
        raise _unauthorized("Could not validate credentials")

    return payload["sub"]


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> UserDB:
    """Resolve the bearer token to a stored contributor."""
    contributor_id = read_token(credentials.credentials)
    user = db.query(UserDB).filter(UserDB.id == contributor_id).first()
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user


async def require_admin(current_user: UserDB = Depends(get_current_user)) -> UserDB:
    """Administrators only: user listing and super request decisions."""
    if current_user.role != ContributorRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
