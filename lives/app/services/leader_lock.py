"""Redis-backed leader lock for the scheduled reset.

When several instances each run a scheduler, only the instance holding the
lock fires the scheduled cycle. The lock is optional: without Redis every
instance fires and the bulk reset's idempotence makes the extra runs
affect zero rows.
"""

import uuid
from typing import Any, Optional

from lives.app.core.config import settings
from lives.app.core.logging import get_logger

logger = get_logger(__name__)

# Delete the key only if we still own it
RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisLeaderLock:
    """Short-lived ``SET NX PX`` lock identified by a per-instance token."""

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        key: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self._redis = redis_client
        self._redis_url = redis_url or settings.redis_url
        self.key = key or settings.scheduler_lock_key
        self.ttl_seconds = ttl_seconds or settings.scheduler_lock_ttl_seconds
        self.token = uuid.uuid4().hex

    def _get_redis(self) -> Any:
        if self._redis is None:
            import redis.asyncio as aioredis
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def acquire(self) -> bool:
        """Try to take the lock. Returns False if another instance holds it."""
        redis = self._get_redis()
        acquired = await redis.set(self.key, self.token, nx=True, px=self.ttl_seconds * 1000)
        return bool(acquired)

    async def release(self) -> None:
        redis = self._get_redis()
        await redis.eval(RELEASE_SCRIPT, 1, self.key, self.token)

    async def close(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.close()
            except Exception as e:
                logger.warning(f"Error closing Redis connection: {e}")
            self._redis = None
