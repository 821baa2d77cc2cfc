"""
Single-writer-per-day locking for settlement runs.

Uses a Redis SET NX EX key per day when a client is available, so
overlapping scheduler runs on different hosts skip a day another run is
already settling. Without Redis, an in-process asyncio lock per day covers
overlapping runs inside one process. Neither replaces the ledger-side
idempotency gate, they only avoid racing submissions.
"""

import asyncio
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from prizepool.config import Config
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class DayLockManager:
    """Non-blocking per-day locks. `hold()` yields False when the day is busy."""

    def __init__(self, redis_client=None, ttl_seconds: Optional[int] = None,
                 key_prefix: str = "settlement_lock"):
        self.redis_client = redis_client
        self.ttl_seconds = Config.DAY_LOCK_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.key_prefix = key_prefix
        self._local_locks: Dict[int, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, day_id: int) -> AsyncIterator[bool]:
        if self.redis_client is not None:
            async with self._hold_redis(day_id) as acquired:
                yield acquired
        else:
            async with self._hold_local(day_id) as acquired:
                yield acquired

    @asynccontextmanager
    async def _hold_local(self, day_id: int) -> AsyncIterator[bool]:
        lock = self._local_locks.setdefault(day_id, asyncio.Lock())
        if lock.locked():
            logger.info(f"Day {day_id} is already being settled in this process")
            yield False
            return
        try:
            async with lock:
                yield True
        finally:
            # Nobody waits on these locks, so a released one can be dropped
            if self._local_locks.get(day_id) is lock:
                del self._local_locks[day_id]

    @asynccontextmanager
    async def _hold_redis(self, day_id: int) -> AsyncIterator[bool]:
        lock_key = f"{self.key_prefix}:{day_id}"
        token = secrets.token_hex(16)

        # Expiry frees the day if this process dies mid-run
        is_locked = await self.redis_client.set(lock_key, token, ex=self.ttl_seconds, nx=True)
        if not is_locked:
            logger.info(f"Day {day_id} settlement throttled - lock exists")
            yield False
            return

        try:
            yield True
        finally:
            current = await self.redis_client.get(lock_key)
            if isinstance(current, bytes):
                current = current.decode()
            if current == token:
                await self.redis_client.delete(lock_key)
            else:
                logger.warning(f"Lock for day {day_id} expired before settlement finished")
