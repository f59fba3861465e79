"""Per-learner write serialization.

Two read-modify-write cycles on the same profile must not interleave or one
batch's EMA/BKT effect is silently lost. Different learners never contend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Protocol
from uuid import uuid4

from src.shared.constants import (
    DISTRIBUTED_LOCK_MAX_RETRIES,
    DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS,
    DISTRIBUTED_LOCK_TTL_SECONDS,
)
from src.shared.database import get_redis
from src.shared.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


class ILearnerLock(Protocol):
    """Mutual exclusion keyed by (tenant, learner)."""

    def hold(self, tenant_id: str, learner_id: str):
        """Async context manager held for the duration of a profile write."""
        ...


class InProcessLearnerLock:
    """asyncio locks for a single worker process."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._waiters: dict[tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, tenant_id: str, learner_id: str) -> AsyncGenerator[None, None]:
        key = (tenant_id, learner_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else is queued on this learner
                del self._waiters[key]
                del self._locks[key]

    def active_keys(self) -> int:
        """Number of learners currently holding or awaiting a lock."""
        return len(self._locks)


class RedisLearnerLock:
    """Redis-backed lock for deployments with several workers.

    Uses SET NX EX for atomic acquisition; the TTL bounds how long a crashed
    worker can block a learner. Each holder writes a unique token and only
    deletes the key while it still holds that token.
    """

    LOCK_PREFIX = "adaptation:profile-lock:"

    def __init__(
        self,
        ttl_seconds: int = DISTRIBUTED_LOCK_TTL_SECONDS,
        retry_delay: float = DISTRIBUTED_LOCK_RETRY_DELAY_SECONDS,
        max_retries: int = DISTRIBUTED_LOCK_MAX_RETRIES,
    ) -> None:
        self._ttl = ttl_seconds
        self._retry_delay = retry_delay
        self._max_retries = max_retries

    def _key(self, tenant_id: str, learner_id: str) -> str:
        return f"{self.LOCK_PREFIX}{tenant_id}:{learner_id}"

    @asynccontextmanager
    async def hold(self, tenant_id: str, learner_id: str) -> AsyncGenerator[None, None]:
        """Hold the learner's lock.

        Raises:
            ConcurrencyError: If the lock is still taken after all retries
        """
        redis = await get_redis()
        key = self._key(tenant_id, learner_id)
        token = uuid4().hex

        acquired = False
        for _ in range(self._max_retries):
            acquired = bool(await redis.set(key, token, nx=True, ex=self._ttl))
            if acquired:
                break
            await asyncio.sleep(self._retry_delay)

        if not acquired:
            logger.warning(
                f"Failed to acquire profile lock for learner {learner_id} "
                f"after {self._max_retries} retries"
            )
            raise ConcurrencyError(learner_id, self._max_retries)

        try:
            yield
        finally:
            try:
                if await redis.get(key) == token:
                    await redis.delete(key)
            except Exception as e:
                logger.warning(f"Error releasing profile lock for learner {learner_id}: {e}")
