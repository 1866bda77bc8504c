from fastapi import APIRouter, Depends

from lives.app.middleware.auth import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

from . import lives  # noqa: E402

router.include_router(lives.router, tags=["admin-lives"])
