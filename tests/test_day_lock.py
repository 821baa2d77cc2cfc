import asyncio

import pytest

from prizepool.services.day_lock import DayLockManager


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX EX locking."""

    def __init__(self):
        self.store = {}
        self.expiries = {}

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value.encode()
        self.expiries[key] = ex
        return True

    async def get(self, key):
        return self.store.get(key)

    async def delete(self, key):
        self.store.pop(key, None)


def test_redis_lock_excludes_second_holder_and_releases():
    redis_client = FakeRedis()
    first = DayLockManager(redis_client, ttl_seconds=30)
    second = DayLockManager(redis_client, ttl_seconds=30)

    async def scenario():
        async with first.hold(20000) as acquired:
            assert acquired
            assert redis_client.expiries['settlement_lock:20000'] == 30
            async with second.hold(20000) as other:
                assert not other
            async with second.hold(20001) as other_day:
                assert other_day
        async with second.hold(20000) as again:
            assert again

    asyncio.run(scenario())
    assert redis_client.store == {}


def test_redis_lock_is_not_deleted_when_taken_over():
    redis_client = FakeRedis()
    manager = DayLockManager(redis_client, ttl_seconds=30)

    async def scenario():
        async with manager.hold(20000) as acquired:
            assert acquired
            # Lock expired and another run took it
            redis_client.store['settlement_lock:20000'] = b'someone-else'

    asyncio.run(scenario())
    assert redis_client.store['settlement_lock:20000'] == b'someone-else'


def test_local_lock_without_redis():
    manager = DayLockManager()

    async def scenario():
        async with manager.hold(20000) as acquired:
            assert acquired
            async with manager.hold(20000) as nested:
                assert not nested
        async with manager.hold(20000) as again:
            assert again

    asyncio.run(scenario())


def test_local_locks_are_dropped_once_released():
    manager = DayLockManager()

    async def scenario():
        for day_id in range(20000, 20030):
            async with manager.hold(day_id) as acquired:
                assert acquired
                assert list(manager._local_locks) == [day_id]
        with pytest.raises(RuntimeError):
            async with manager.hold(20030):
                raise RuntimeError("settlement crashed")

    asyncio.run(scenario())
    assert manager._local_locks == {}
