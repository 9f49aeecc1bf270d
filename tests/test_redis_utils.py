"""
JobLock tests: ownership checks happen inside Redis, never client side.
"""
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError

from truthrank.utils.redis_utils import EXTEND_SCRIPT, RELEASE_SCRIPT, JobLock


def lock_client(acquired=True, owned=True):
    client = AsyncMock()
    client.set.return_value = acquired
    client.eval.return_value = 1 if owned else 0
    return client


class TestJobLock:
    @pytest.mark.asyncio
    async def test_without_client_always_acquired(self):
        lock = JobLock(None, 'job', 60)

        assert await lock.acquire() is True
        assert await lock.extend() is True
        await lock.release()

    @pytest.mark.asyncio
    async def test_acquire_sets_key_with_ttl(self):
        client = lock_client()
        lock = JobLock(client, 'job', 60)

        assert await lock.acquire() is True

        args, kwargs = client.set.await_args
        assert args[0] == 'truthrank:lock:job'
        assert kwargs == {'nx': True, 'ex': 60}

    @pytest.mark.asyncio
    async def test_held_lock_not_acquired(self):
        lock = JobLock(lock_client(acquired=None), 'job', 60)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_redis_error_on_acquire_means_not_acquired(self):
        client = lock_client()
        client.set.side_effect = RedisError("connection refused")

        assert await JobLock(client, 'job', 60).acquire() is False

    @pytest.mark.asyncio
    async def test_extend_refreshes_ttl_for_owner(self):
        client = lock_client()
        lock = JobLock(client, 'job', 60)
        await lock.acquire()
        token = client.set.await_args.args[1]

        assert await lock.extend() is True
        client.eval.assert_awaited_once_with(EXTEND_SCRIPT, 1, 'truthrank:lock:job', token, 60)

    @pytest.mark.asyncio
    async def test_extend_reports_lost_lock(self):
        lock = JobLock(lock_client(owned=False), 'job', 60)
        await lock.acquire()

        assert await lock.extend() is False

    @pytest.mark.asyncio
    async def test_release_is_a_single_compare_and_delete(self):
        client = lock_client(owned=False)
        lock = JobLock(client, 'job', 60)
        await lock.acquire()
        token = client.set.await_args.args[1]

        await lock.release()
        await lock.release()

        client.eval.assert_awaited_once_with(RELEASE_SCRIPT, 1, 'truthrank:lock:job', token)
        client.get.assert_not_awaited()
        client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_error_is_logged_not_raised(self):
        client = lock_client()
        client.eval.side_effect = RedisError("timeout")
        lock = JobLock(client, 'job', 60)
        await lock.acquire()

        await lock.release()
