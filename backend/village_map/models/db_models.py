"""
Village Map - SQLAlchemy ORM Models
Database models for contributors, villages, submissions and their votes
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey,
    Enum as SQLEnum, Boolean, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class ContributorRole(str, Enum):
    """Closed set of contributor roles."""
    USER = "user"
    SUPER = "super"
    ADMIN = "admin"


class UserType(str, Enum):
    """Who the contributor is on the ground."""
    LOCAL = "local"
    EMERGENCY = "emergency"


class SubmissionKind(str, Enum):
    """Kinds of community submissions that go through verification."""
    LANDMARK = "landmark"
    ROUTE = "route"


class SubmissionStatus(str, Enum):
    """States of the verification state machine."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DISPUTED = "disputed"


class VoteChoice(str, Enum):
    """A contributor's assertion about a submission."""
    YES = "yes"
    NO = "no"


class SuperRequestStatus(str, Enum):
    """Lifecycle of a request for super contributor status."""
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


# =============================================================================
# CONTRIBUTORS
# =============================================================================

class UserDB(Base):
    """Contributor account with the reputation attributes used for vote weighting."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role = Column(String(20), nullable=False, default=ContributorRole.USER.value)
    user_type = Column(String(20), nullable=False, default="local")  # local resident or emergency responder

    # ==========================================================================
    # REPUTATION - Fuels the vote weight policy
    # ==========================================================================
    is_super = Column(Boolean, nullable=False, default=False)  # Never reverts once granted
    reputation_score = Column(Integer, nullable=False, default=0)  # Clamped to 0..100

    # Verified submission counters (drive promotion to super)
    verified_landmarks_added = Column(Integer, nullable=False, default=0)
    verified_routes_added = Column(Integer, nullable=False, default=0)
    contributions_verified = Column(Integer, nullable=False, default=0)

    # Voting accuracy, judged when a voted submission reaches a final outcome
    votes_judged = Column(Integer, nullable=False, default=0)
    correct_votes = Column(Integer, nullable=False, default=0)

    # Relationships
    submissions = relationship("SubmissionDB", back_populates="creator", cascade="all, delete-orphan")
    super_requests = relationship("SuperRequestDB", back_populates="user", cascade="all, delete-orphan")


class SuperRequestDB(Base):
    """A contributor's request to be granted super status by an administrator."""
    __tablename__ = "super_requests"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(SuperRequestStatus), nullable=False, default=SuperRequestStatus.PENDING)
    decided_by = Column(String(36), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="super_requests")


# =============================================================================
# MAP DATA
# =============================================================================

class VillageDB(Base):
    """Village shown on the map. Plain CRUD, no verification."""
    __tablename__ = "villages"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)  # Image references (paths or URLs)
    latitude = Column(Float, nullable=False, default=0.0)
    longitude = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = relationship("SubmissionDB", back_populates="village")


class SubmissionDB(Base):
    """
    A landmark or route proposed by a contributor.

    The verification columns are a cached snapshot of the vote tally and are
    rewritten on every committed vote. `version` is the optimistic lock.
    """
    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True)  # UUID
    kind = Column(SQLEnum(SubmissionKind), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    village_id = Column(String(36), ForeignKey("villages.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Geometry: [{"lat": .., "lon": ..}] - one point for a landmark, >= 2 for a route
    points = Column(JSON, nullable=False, default=list)
    color = Column(String(7), nullable=True)  # Routes only

    # ==========================================================================
    # VERIFICATION STATE
    # ==========================================================================
    status = Column(SQLEnum(SubmissionStatus), nullable=False, default=SubmissionStatus.PENDING)
    verified = Column(Boolean, nullable=False, default=False)  # Mirrors status == VERIFIED
    total_weight = Column(Float, nullable=False, default=0.0)
    yes_weight = Column(Float, nullable=False, default=0.0)
    no_weight = Column(Float, nullable=False, default=0.0)
    confidence_score = Column(Float, nullable=False, default=0.0)

    first_verified_at = Column(DateTime, nullable=True)  # Set once, gates the creator counter
    outcome_settled_at = Column(DateTime, nullable=True)  # Set once, gates vote judgement
    last_vote_at = Column(DateTime, nullable=True)
    vote_revision = Column(Integer, nullable=False, default=0)  # Bumped on every cast vote

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    creator = relationship("UserDB", back_populates="submissions")
    village = relationship("VillageDB", back_populates="submissions")
    votes = relationship(
        "VoteDB",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="VoteDB.cast_at",
    )


VOTE_UNIQUE_CONSTRAINT = "uq_vote_submission_user"


class VoteDB(Base):
    """One contributor's vote on one submission. Weight is snapshotted at cast time."""
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("submission_id", "user_id", name=VOTE_UNIQUE_CONSTRAINT),
    )

    id = Column(String(36), primary_key=True)  # UUID
    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    choice = Column(SQLEnum(VoteChoice), nullable=False)
    weight = Column(Float, nullable=False, default=1.0)
    cast_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    submission = relationship("SubmissionDB", back_populates="votes")


# =============================================================================
# COMMUNITY UPDATES
# =============================================================================

class CommunityUpdateDB(Base):
    """Free-form update about a village submitted by a resident."""
    __tablename__ = "community_updates"

    id = Column(String(36), primary_key=True)  # UUID
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    village_name = Column(String(255), nullable=False)
    update_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
