"""
RecalculationJob tests: paging, idempotence, partial failure and locking.
"""
import asyncio
import dataclasses
from unittest.mock import AsyncMock

import pytest

from truthrank.data_models.rank import Rank
from truthrank.services.batch import PageRunner
from truthrank.services.recalculation_job import RecalculationJob
from truthrank.utils.redis_utils import EXTEND_SCRIPT, RELEASE_SCRIPT

from conftest import make_stats, qualified_novice


@pytest.fixture
def job_factory(store, calculator, evaluator, clock, notifier, leaderboard):
    def build(**overrides):
        options = dict(
            notifier=notifier,
            leaderboard=leaderboard,
            page_size=2,
            runner=PageRunner(max_workers=2, page_timeout=5),
        )
        options.update(overrides)
        return RecalculationJob(store, calculator, evaluator, clock, **options)
    return build


async def seed(store):
    await store.create(qualified_novice("ready-1"))
    await store.create(qualified_novice("ready-2"))
    await store.create(make_stats("slow-1", total_predictions=3))
    await store.create(make_stats("slow-2", total_predictions=1))
    await store.create(make_stats("slow-3"))


async def snapshot(store):
    return {stats.user_id: stats async for page in store.iterate_pages(100) for stats in page}


class TestRun:
    @pytest.mark.asyncio
    async def test_processes_every_user_across_pages(self, store, job_factory, notifier):
        await seed(store)

        result = await job_factory().run()

        assert result.users_processed == 5
        assert result.upgrades_triggered == 2
        assert result.errors == 0
        assert result.skipped is False
        assert result.completed_at is not None
        assert notifier.notify_upgraded.await_count == 2
        assert (await store.get("ready-1")).current_rank is Rank.AMATEUR
        assert (await store.get("slow-1")).rank_percentage == 55.0

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, store, job_factory):
        await seed(store)
        job = job_factory()

        await job.run()
        after_first = await snapshot(store)
        second = await job.run()
        after_second = await snapshot(store)
        third = await job.run()
        after_third = await snapshot(store)

        assert second.upgrades_triggered == 0
        assert third.upgrades_triggered == 0
        for user_id in ("slow-1", "slow-2", "slow-3"):
            assert after_second[user_id] == after_first[user_id]
        assert after_third == after_second

    @pytest.mark.asyncio
    async def test_one_failing_user_does_not_stop_the_run(self, store, job_factory, calculator):
        await seed(store)
        original = calculator.compute

        def compute(stats, criteria=None):
            if stats.user_id == "slow-2":
                raise RuntimeError("corrupt document")
            return original(stats, criteria)

        calculator.compute = compute
        result = await job_factory().run()

        assert result.users_processed == 4
        assert result.errors == 1
        assert result.error_details == [{'user_id': 'slow-2', 'error': 'RuntimeError: corrupt document'}]
        assert result.upgrades_triggered == 2

    @pytest.mark.asyncio
    async def test_slow_user_times_out_and_is_recorded(self, store, job_factory):
        await seed(store)
        original = store.read_modify_write

        async def read_modify_write(user_id, mutator):
            if user_id == "slow-3":
                await asyncio.sleep(10)
            return await original(user_id, mutator)

        store.read_modify_write = read_modify_write
        result = await job_factory(runner=PageRunner(max_workers=2, page_timeout=0.5)).run()

        assert result.errors == 1
        assert result.error_details[0]['user_id'] == "slow-3"
        assert "TimeoutError" in result.error_details[0]['error']
        assert result.users_processed == 4

    @pytest.mark.asyncio
    async def test_notifier_failure_is_not_fatal(self, store, job_factory, notifier):
        await store.create(qualified_novice("ready-1"))
        notifier.notify_upgraded.side_effect = RuntimeError("smtp down")

        result = await job_factory().run()

        assert result.upgrades_triggered == 1
        assert result.errors == 0
        assert (await store.get("ready-1")).current_rank is Rank.AMATEUR

    @pytest.mark.asyncio
    async def test_refreshes_leaderboards_after_run(self, store, job_factory, leaderboard):
        await seed(store)

        await job_factory().run()

        amateur = leaderboard.snapshot(Rank.AMATEUR)
        assert {entry.user_id for entry in amateur.entries} == {"ready-1", "ready-2"}

    @pytest.mark.asyncio
    async def test_empty_store(self, job_factory):
        result = await job_factory().run()

        assert result.users_processed == 0
        assert result.errors == 0


class TestLocking:
    @pytest.mark.asyncio
    async def test_skipped_when_lock_held(self, store, job_factory):
        await seed(store)
        redis_client = AsyncMock()
        redis_client.set.return_value = None

        result = await job_factory(redis_client=redis_client).run()

        assert result.skipped is True
        assert result.users_processed == 0
        assert (await store.get("ready-1")).current_rank is Rank.NOVICE

    @pytest.mark.asyncio
    async def test_lock_acquired_extended_and_released(self, store, job_factory):
        await seed(store)
        redis_client = AsyncMock()
        redis_client.set.return_value = True
        redis_client.eval.return_value = 1

        result = await job_factory(redis_client=redis_client).run()

        assert result.skipped is False
        assert result.users_processed == 5
        args, kwargs = redis_client.set.await_args
        assert args[0] == "truthrank:lock:rank_recalculation"
        assert kwargs['nx'] is True
        token = args[1]
        scripts = [call.args[0] for call in redis_client.eval.await_args_list]
        assert scripts == [EXTEND_SCRIPT] * 3 + [RELEASE_SCRIPT]
        assert redis_client.eval.await_args.args[1:] == (1, "truthrank:lock:rank_recalculation", token)
        redis_client.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_lock_does_not_abort_run(self, store, job_factory):
        await seed(store)
        redis_client = AsyncMock()
        redis_client.set.return_value = True
        redis_client.eval.return_value = 0

        result = await job_factory(redis_client=redis_client).run()

        assert result.users_processed == 5
        assert result.errors == 0


class TestSettings:
    def test_explicit_values_are_not_replaced_by_defaults(self):
        runner = PageRunner(max_workers=1, page_timeout=0.25)
        assert runner.max_workers == 1
        assert runner.page_timeout == 0.25

    def test_invalid_runner_settings_rejected(self):
        with pytest.raises(ValueError):
            PageRunner(max_workers=0)
        with pytest.raises(ValueError):
            PageRunner(page_timeout=0)

    @pytest.mark.asyncio
    async def test_invalid_page_size_rejected(self, store, calculator, evaluator, clock):
        with pytest.raises(ValueError):
            RecalculationJob(store, calculator, evaluator, clock, page_size=0)
