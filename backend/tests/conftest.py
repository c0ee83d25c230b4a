"""
Shared fixtures: in-memory SQLite database, contributor/submission factories
and an authenticated API client.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from village_map.database import Base, get_db
from village_map.auth import create_access_token, hash_password
from village_map.main import app
from village_map.models.db_models import (
    UserDB, SubmissionDB, SubmissionKind, SubmissionStatus, ContributorRole,
)

NOW = datetime(2025, 3, 1, 12, 0, 0)


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db):
    """Create and commit a contributor."""
    def _make_user(**overrides):
        suffix = uuid4().hex[:8]
        fields = {
            "id": str(uuid4()),
            "email": f"user-{suffix}@villagemap.org",
            "username": f"user_{suffix}",
            "password_hash": hash_password("password123"),
            "role": ContributorRole.USER.value,
        }
        fields.update(overrides)
        user = UserDB(**fields)
        db.add(user)
        db.commit()
        return user
    return _make_user


@pytest.fixture
def make_submission(db):
    """Create and commit a pending landmark (or route)."""
    def _make_submission(creator, kind=SubmissionKind.LANDMARK, **overrides):
        points = [{"lat": 31.25, "lon": 34.79}]
        if kind == SubmissionKind.ROUTE:
            points = [{"lat": 31.25, "lon": 34.79}, {"lat": 31.27, "lon": 34.81}]
        fields = {
            "id": str(uuid4()),
            "kind": kind,
            "name": "Water well" if kind == SubmissionKind.LANDMARK else "Road to clinic",
            "created_by": creator.id,
            "points": points,
            "status": SubmissionStatus.PENDING,
            "verified": False,
        }
        fields.update(overrides)
        submission = SubmissionDB(**fields)
        db.add(submission)
        db.commit()
        return submission
    return _make_submission


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def client(session_factory):
    """TestClient whose requests use the test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer header for a contributor."""
    def _auth_headers(user: UserDB) -> dict:
        token = create_access_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers
