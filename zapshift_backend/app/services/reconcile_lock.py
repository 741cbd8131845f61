"""
Per-transaction reconciliation lock backed by Redis.

Gives concurrent deliveries of the same payment confirmation a single
writer. The unique constraint on payments.transaction_id remains the
final guard, so a Redis outage degrades to constraint-only dedupe.
"""

import enum
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import RedisError

logger = logging.getLogger("zapshift.payments")

LOCK_KEY_PREFIX = "reconcile:lock:"


class LockOutcome(str, enum.Enum):
    ACQUIRED = "ACQUIRED"
    BUSY = "BUSY"          # another delivery holds the lock
    BYPASSED = "BYPASSED"  # lock disabled or Redis unreachable


class ReconcileLock:

    def __init__(self, redis_client, ttl_seconds: int = 30, enabled: bool = True):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    @asynccontextmanager
    async def guard(self, transaction_id: str) -> AsyncIterator[LockOutcome]:
        """
        Hold the lock for transaction_id for the duration of the block.

        Yields the outcome; the caller decides what BUSY means for it.
        """
        if not self.enabled:
            yield LockOutcome.BYPASSED
            return

        key = f"{LOCK_KEY_PREFIX}{transaction_id}"
        token = uuid.uuid4().hex

        try:
            acquired = await self.redis.set(key, token, nx=True, ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning("Reconcile lock unavailable for %s, relying on unique constraint: %s", transaction_id, e)
            yield LockOutcome.BYPASSED
            return

        if not acquired:
            yield LockOutcome.BUSY
            return

        try:
            yield LockOutcome.ACQUIRED
        finally:
            await self._release(key, token)

    async def _release(self, key: str, token: str) -> None:
        try:
            # Only delete our own lock; an expired lock may have been retaken
            if await self.redis.get(key) == token:
                await self.redis.delete(key)
        except RedisError as e:
            logger.warning("Failed to release reconcile lock %s (expires in %ss): %s", key, self.ttl_seconds, e)
