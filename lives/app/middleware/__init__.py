"""Middleware package for the lives service."""

from lives.app.middleware.auth import require_admin, require_user_id
from lives.app.middleware.lives_gate import LivesGateMiddleware
from lives.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_admin",
    "require_user_id",
    "LivesGateMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
]
