"""
Per-tier leaderboard cache.

Each tier holds one immutable top-N snapshot rebuilt from persisted UserStats.
Reads refresh an absent or expired snapshot before returning. Concurrent
refreshes of one tier share a single in-flight task, so a cold read under load
hits the store once.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from truthrank.config import Config
from truthrank.data_models.leaderboard import LeaderboardEntry, LeaderboardSnapshot
from truthrank.data_models.rank import Rank
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.utils.clock import Clock

logger = logging.getLogger(__name__)


class LeaderboardCache:
    """Read-through, TTL-bound, single-flight leaderboard cache."""

    def __init__(self, store: UserStatsStore, catalog: RankCatalog, clock: Clock,
                 ttl_seconds: Optional[int] = None, top_n: Optional[int] = None):
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.ttl_seconds = Config.LEADERBOARD_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.top_n = Config.LEADERBOARD_TOP_N if top_n is None else top_n
        if self.ttl_seconds < 0 or self.top_n < 1:
            raise ValueError("ttl_seconds must not be negative and top_n must be positive")
        self._snapshots: Dict[Rank, LeaderboardSnapshot] = {}
        self._in_flight: Dict[Rank, asyncio.Task] = {}
        # Bumped on invalidate so a refresh started earlier cannot install stale rows
        self._generations: Dict[Rank, int] = {}
        self._lock = asyncio.Lock()

    async def get(self, rank: Rank) -> List[LeaderboardEntry]:
        """Top-N entries for a tier, refreshing first if the snapshot is missing or expired."""
        snapshot = self._snapshots.get(rank)
        if snapshot is None or snapshot.is_expired(self.clock.now()):
            snapshot = await self.refresh(rank)
        return list(snapshot.entries)

    def snapshot(self, rank: Rank) -> Optional[LeaderboardSnapshot]:
        """Currently cached snapshot, without refreshing."""
        return self._snapshots.get(rank)

    async def invalidate(self, rank: Rank):
        async with self._lock:
            self._snapshots.pop(rank, None)
            self._in_flight.pop(rank, None)
            self._generations[rank] = self._generations.get(rank, 0) + 1
        logger.debug(f"Invalidated leaderboard cache for {rank.value}")

    async def refresh(self, rank: Rank) -> LeaderboardSnapshot:
        """Rebuild a tier's snapshot, joining a refresh already in flight."""
        self.catalog.get(rank)
        async with self._lock:
            task = self._in_flight.get(rank)
            if task is None:
                task = asyncio.create_task(self._rebuild(rank, self._generations.get(rank, 0)))
                self._in_flight[rank] = task
                task.add_done_callback(lambda done, r=rank: self._forget(r, done))
        # A cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def refresh_all(self) -> Dict[Rank, LeaderboardSnapshot]:
        ranks = self.catalog.ranks
        snapshots = await asyncio.gather(*(self.refresh(rank) for rank in ranks))
        return dict(zip(ranks, snapshots))

    def _forget(self, rank: Rank, task: asyncio.Task):
        if self._in_flight.get(rank) is task:
            del self._in_flight[rank]

    async def _rebuild(self, rank: Rank, generation: int) -> LeaderboardSnapshot:
        users = await self.store.top_for_rank(rank, self.top_n)
        entries = [
            LeaderboardEntry(
                user_id=stats.user_id,
                display_name=stats.display_name,
                avatar_url=stats.avatar_url,
                rank_percentage=stats.rank_percentage,
                accuracy_rate=round(stats.accuracy_rate, 1),
                total_predictions=stats.total_predictions,
                position=position,
            )
            for position, stats in enumerate(users, start=1)
        ]
        snapshot = LeaderboardSnapshot(
            rank=rank,
            entries=entries,
            last_updated_at=self.clock.now(),
            ttl_seconds=self.ttl_seconds,
        )

        async with self._lock:
            if self._generations.get(rank, 0) == generation:
                self._snapshots[rank] = snapshot
        logger.debug(f"Refreshed {rank.value} leaderboard with {len(entries)} entries")
        return snapshot
