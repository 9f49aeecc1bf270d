"""
LeaderboardCache tests: ordering, TTL expiry and single-flight refresh.
"""
import asyncio

import pytest

from truthrank.data_models.rank import Rank
from truthrank.services.leaderboard import LeaderboardCache

from conftest import make_stats


async def seed(store):
    await store.create(make_stats("c", rank_percentage=80.0, total_predictions=5))
    await store.create(make_stats("b", rank_percentage=80.0, total_predictions=9,
                                  total_resolved_predictions=4, correct_predictions=3))
    await store.create(make_stats("a", rank_percentage=80.0, total_predictions=5))
    await store.create(make_stats("d", rank_percentage=95.0, total_predictions=1))
    await store.create(make_stats("e", current_rank=Rank.AMATEUR, rank_percentage=99.0))


def count_refreshes(store):
    """Wrap store.top_for_rank so tests can count underlying reads."""
    original = store.top_for_rank
    calls = []

    async def counting(rank, limit):
        calls.append(rank)
        await asyncio.sleep(0.01)
        return await original(rank, limit)

    store.top_for_rank = counting
    return calls


class TestContents:
    @pytest.mark.asyncio
    async def test_sorted_and_truncated(self, store, leaderboard):
        await seed(store)

        entries = await leaderboard.get(Rank.NOVICE)

        assert [entry.user_id for entry in entries] == ["d", "b", "a"]
        assert [entry.position for entry in entries] == [1, 2, 3]
        assert entries[1].accuracy_rate == 75.0
        assert entries[1].total_predictions == 9

    @pytest.mark.asyncio
    async def test_tiers_are_separate(self, store, leaderboard):
        await seed(store)

        entries = await leaderboard.get(Rank.AMATEUR)

        assert [entry.user_id for entry in entries] == ["e"]
        assert await leaderboard.get(Rank.MASTER) == []


class TestExpiry:
    @pytest.mark.asyncio
    async def test_served_from_cache_within_ttl(self, store, leaderboard, clock):
        await seed(store)
        calls = count_refreshes(store)

        await leaderboard.get(Rank.NOVICE)
        clock.advance(seconds=3600)
        await leaderboard.get(Rank.NOVICE)

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_refreshed_after_ttl(self, store, leaderboard, clock):
        await seed(store)
        calls = count_refreshes(store)

        await leaderboard.get(Rank.NOVICE)
        await store.create(make_stats("z", rank_percentage=100.0))
        clock.advance(seconds=3601)
        entries = await leaderboard.get(Rank.NOVICE)

        assert len(calls) == 2
        assert entries[0].user_id == "z"
        assert leaderboard.snapshot(Rank.NOVICE).last_updated_at == clock.now()

    @pytest.mark.asyncio
    async def test_zero_ttl_refreshes_on_every_later_read(self, store, catalog, clock):
        await seed(store)
        leaderboard = LeaderboardCache(store, catalog, clock, ttl_seconds=0, top_n=3)
        calls = count_refreshes(store)

        await leaderboard.get(Rank.NOVICE)
        clock.advance(seconds=1)
        await leaderboard.get(Rank.NOVICE)

        assert leaderboard.ttl_seconds == 0
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_invalid_settings_rejected(self, store, catalog, clock):
        with pytest.raises(ValueError):
            LeaderboardCache(store, catalog, clock, ttl_seconds=-1)
        with pytest.raises(ValueError):
            LeaderboardCache(store, catalog, clock, top_n=0)

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, store, leaderboard):
        await seed(store)
        calls = count_refreshes(store)

        await leaderboard.get(Rank.NOVICE)
        await leaderboard.invalidate(Rank.NOVICE)
        assert leaderboard.snapshot(Rank.NOVICE) is None
        await leaderboard.get(Rank.NOVICE)

        assert len(calls) == 2


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_cold_reads_refresh_once(self, store, leaderboard):
        await seed(store)
        calls = count_refreshes(store)

        results = await asyncio.gather(*(leaderboard.get(Rank.NOVICE) for _ in range(10)))

        assert len(calls) == 1
        assert all(result == results[0] for result in results)

    @pytest.mark.asyncio
    async def test_failed_refresh_is_not_cached(self, store, leaderboard):
        await seed(store)
        original = store.top_for_rank

        async def failing(rank, limit):
            raise RuntimeError("store down")

        store.top_for_rank = failing
        with pytest.raises(RuntimeError):
            await leaderboard.get(Rank.NOVICE)

        store.top_for_rank = original
        entries = await leaderboard.get(Rank.NOVICE)
        assert len(entries) == 3

    @pytest.mark.asyncio
    async def test_refresh_all_covers_every_tier(self, store, leaderboard, catalog):
        await seed(store)

        snapshots = await leaderboard.refresh_all()

        assert set(snapshots) == set(catalog.ranks)
        assert [entry.user_id for entry in snapshots[Rank.AMATEUR].entries] == ["e"]
        assert leaderboard.snapshot(Rank.MASTER) is not None
