"""
Shared pytest fixtures for the TruthRank engine tests.
"""
import os

# Keep test runs from writing log files
os.environ["LOG_DIR"] = ""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from truthrank.data_models.rank import Rank, UserStats
from truthrank.database.database import Database
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.operations.upgrade_evaluator import UpgradeEvaluator
from truthrank.services.leaderboard import LeaderboardCache
from truthrank.services.notifier import Notifier
from truthrank.services.rank_service import RankService
from truthrank.services.rate_limiter import RateLimiter
from truthrank.utils.clock import Clock
from truthrank.utils.score_calculator import ScoreCalculator

# A Wednesday
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


def make_stats(user_id: str = "user-1", now: datetime = NOW, days_old: int = 10, **overrides) -> UserStats:
    """UserStats for a novice created days_old days before now."""
    created = now - timedelta(days=days_old)
    values = dict(
        user_id=user_id,
        created_at=created,
        current_rank=Rank.NOVICE,
        current_rank_start_date=created,
        display_name=f"Player {user_id}",
    )
    values.update(overrides)
    return UserStats(**values)


def qualified_novice(user_id: str = "user-1", **overrides) -> UserStats:
    """A novice who clears every amateur floor and scores 100%."""
    values = dict(
        total_predictions=10,
        total_resolved_predictions=6,
        correct_predictions=4,
        weekly_activity_count=2,
        last_active_at=NOW - timedelta(days=1),
    )
    values.update(overrides)
    return make_stats(user_id, **values)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def catalog():
    return RankCatalog.default()


@pytest.fixture
def calculator(catalog, clock):
    return ScoreCalculator(catalog, clock)


@pytest.fixture
def evaluator(catalog, clock):
    return UpgradeEvaluator(catalog, clock)


@pytest.fixture
def notifier():
    mock = AsyncMock(spec=Notifier)
    return mock


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'truthrank_test.db'}")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database, catalog):
    return UserStatsStore(database.session_factory, catalog)


@pytest_asyncio.fixture
async def leaderboard(store, catalog, clock):
    return LeaderboardCache(store, catalog, clock, ttl_seconds=3600, top_n=3)


@pytest_asyncio.fixture
async def rank_service(store, catalog, calculator, evaluator, clock, leaderboard, notifier):
    return RankService(
        store, catalog, calculator, evaluator,
        RateLimiter(clock, cooldown_seconds=3600), clock,
        leaderboard=leaderboard, notifier=notifier,
    )
