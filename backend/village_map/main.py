"""
Village Map - FastAPI Application

Main entry point for the village map backend.

Architecture:
- Contributors submit landmarks and routes (pending, no votes)
- Votes → VoteService → VerificationEngine → status + confidence snapshot
- First verification credits the creator; 10 verified submissions → super contributor
"""
from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import (
    auth_router, users_router, villages_router, landmarks_router, routes_router, updates_router,
)
from .database import init_db

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Village Map",
    description="""
    Village Map - Community Mapping Backend

    Residents and emergency responders map villages, landmarks and routes
    in unrecognized settlement areas and verify each other's contributions.

    ## Verification
    1. **Weight**: each vote is weighted by the voter's standing (1, 2 or 4)
    2. **Decay**: vote influence halves roughly every 139 hours
    3. **Threshold**: 5 + 0.2 per vote cast, with 80% agreement to verify
    4. **Status**: pending, verified, rejected or disputed, re-evaluated on every vote
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(villages_router)
app.include_router(landmarks_router)
app.include_router(routes_router)
app.include_router(updates_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Village Map",
        "version": "1.0.0",
        "description": "Community mapping with weighted crowd verification",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m village_map.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8082")))
