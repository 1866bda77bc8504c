"""Lives gate middleware.

Rejects POST requests to gated routes with 403 when the caller has no
lives left. Requests without a user id, and requests made while the quota
store is unavailable, pass through unchanged.

The gated routes belong to the host platform (quiz, exercise and progress
submissions), not to this service: the lives routes enforce quota
themselves. With no matching routes mounted the middleware is a no-op.
"""

from typing import Callable, Sequence

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from lives.app.core.config import settings
from lives.app.core.logging import get_log_context, get_logger
from lives.app.exceptions import QuotaExhaustedError
from lives.app.middleware.auth import get_user_id
from lives.app.services.quota_gate import QuotaGate, get_quota_gate

logger = get_logger(__name__)


class LivesGateMiddleware(BaseHTTPMiddleware):
    """Apply QuotaGate.check to costly POST routes."""

    def __init__(
        self,
        app,
        gated_paths: Sequence[str] | None = None,
        gate_factory: Callable[[], QuotaGate] = get_quota_gate,
    ):
        super().__init__(app)
        self.gate_factory = gate_factory
        self.gated_paths = tuple(
            settings.lives_gated_paths if gated_paths is None else gated_paths
        )

    def is_gated(self, request: Request) -> bool:
        if request.method != "POST":
            return False
        return request.url.path.startswith(self.gated_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.gated_paths or not self.is_gated(request):
            return await call_next(request)

        user_id = get_user_id(request)
        if user_id is None:
            # Authentication is enforced by the route itself
            return await call_next(request)

        try:
            await self.gate_factory().check(user_id)
        except QuotaExhaustedError as e:
            logger.info(
                f"Rejected {request.method} {request.url.path}: no lives remaining",
                extra=get_log_context(
                    user_id=user_id,
                    path=request.url.path,
                    method=request.method,
                    status_code=e.status_code,
                ),
            )
            return JSONResponse(status_code=e.status_code, content=e.to_response())

        return await call_next(request)
