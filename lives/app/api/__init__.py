"""API endpoints package for the lives service."""

from lives.app.api.admin.router import router as admin_router
from lives.app.api.lives import router as lives_router

__all__ = [
    "admin_router",
    "lives_router",
]
