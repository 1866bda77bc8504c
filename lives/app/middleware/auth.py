import hmac
import os

from fastapi import HTTPException, Request

from lives.app.core.config import settings
from lives.app.exceptions import AuthenticationError

# Upstream auth forwards ids; anything longer is not one of ours
MAX_USER_ID_LENGTH = 64


def get_admin_token() -> str:
    """Get admin token from environment variable.

    Raises:
        HTTPException: 503 if ADMIN_TOKEN is not set
    """
    token = os.getenv("ADMIN_TOKEN")
    if token is not None:
        # Normalize accidental whitespace/newline from env/secret stores.
        token = token.strip()
    if not token:
        raise HTTPException(status_code=503, detail="Admin API is not configured")
    return token


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip()


def require_admin(request: Request) -> str:
    """Validate admin token for protected endpoints.

    Args:
        request: The incoming request

    Returns:
        Admin identifier if valid

    Raises:
        HTTPException: 401 if admin token is missing or invalid
    """
    expected_token = get_admin_token()
    token = get_bearer_token(request) or ""

    # Constant-time comparison; same message for missing and wrong tokens
    if not hmac.compare_digest(token, expected_token):
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")

    return "admin"


def get_user_id(request: Request) -> str | None:
    """Read the caller's user id set by the upstream auth layer."""
    user_id = request.headers.get(settings.user_id_header, "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        return None
    return user_id


def require_user_id(request: Request) -> str:
    """FastAPI dependency returning the authenticated user id.

    Raises:
        AuthenticationError: 401 if the identity header is missing
    """
    user_id = get_user_id(request)
    if user_id is None:
        raise AuthenticationError(f"Missing or invalid {settings.user_id_header} header")
    return user_id
