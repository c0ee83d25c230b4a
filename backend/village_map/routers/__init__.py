"""Village Map - API Routers"""
from .auth import router as auth_router
from .users import router as users_router
from .villages import router as villages_router
from .landmarks import router as landmarks_router
from .routes import router as routes_router
from .updates import router as updates_router

__all__ = [
    "auth_router",
    "users_router",
    "villages_router",
    "landmarks_router",
    "routes_router",
    "updates_router",
]
