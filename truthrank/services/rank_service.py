"""
Interactive rank operations for a single user.

This is the surface the web layer calls: refreshing one's own rank (rate
limited), recording prediction activity, and reading rank status. Every write
goes through the store's read-modify-write so it merges with concurrent batch
jobs instead of overwriting them.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from truthrank.data_models.rank import (
    PredictionResolutionData, RankCalculationResult, RankConfig, RankStatus,
    RecalculationResponse, UserStats
)
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.operations.activity import apply_prediction, apply_resolution
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.operations.upgrade_evaluator import UpgradeEvaluator
from truthrank.services.leaderboard import LeaderboardCache
from truthrank.services.notifier import LoggingNotifier, Notifier
from truthrank.services.rate_limiter import RateLimiter
from truthrank.utils.clock import Clock, days_between
from truthrank.utils.exceptions import RateLimitedError
from truthrank.utils.score_calculator import ScoreCalculator

logger = logging.getLogger(__name__)


def estimate_days_to_next_rank(stats: UserStats, calculation: RankCalculationResult,
                               next_config: Optional[RankConfig], now: datetime) -> Optional[int]:
    """
    Extrapolate the days left until the next tier from progress so far.

    Returns None at the top tier or when there is no progress rate to
    extrapolate from yet.
    """
    if next_config is None:
        return None
    if calculation.eligible_for_upgrade:
        return 0

    tenure_remaining = max(0, next_config.min_time_gate_days - days_between(stats.created_at, now))
    days_in_rank = days_between(stats.current_rank_start_date, now)
    if calculation.percentage <= 0 or days_in_rank == 0:
        return None

    rate = calculation.percentage / days_in_rank
    progress_remaining = (100 - calculation.percentage) / rate
    return max(tenure_remaining, math.ceil(progress_remaining))


class RankService:
    """Per-user rank operations."""

    def __init__(self, store: UserStatsStore, catalog: RankCatalog, calculator: ScoreCalculator,
                 evaluator: UpgradeEvaluator, rate_limiter: RateLimiter, clock: Clock,
                 leaderboard: Optional[LeaderboardCache] = None,
                 notifier: Optional[Notifier] = None):
        self.store = store
        self.catalog = catalog
        self.calculator = calculator
        self.evaluator = evaluator
        self.rate_limiter = rate_limiter
        self.clock = clock
        self.leaderboard = leaderboard
        self.notifier = notifier or LoggingNotifier()

    async def register_user(self, user_id: str, display_name: str = "Anonymous",
                            avatar_url: Optional[str] = None) -> UserStats:
        """Create a stats document in the entry tier."""
        now = self.clock.now()
        stats = UserStats(
            user_id=user_id,
            created_at=now,
            current_rank=self.catalog.entry_rank,
            current_rank_start_date=now,
            display_name=display_name,
            avatar_url=avatar_url,
        )
        return await self.store.create(stats)

    async def recalculate_my_rank(self, user_id: str) -> RecalculationResponse:
        """
        Recalculate a user's rank on their own request.

        Raises:
            RateLimitedError: If the cooldown since the last refresh has not passed
            UserNotFoundError: If the user has no stats document
            ValidationError: If the stored stats are malformed
        """
        return await self.recalculate_user(user_id)

    async def recalculate_user(self, user_id: str, force: bool = False) -> RecalculationResponse:
        """
        Recalculate a single user's rank.

        Operators pass force=True to skip the interactive cooldown, e.g. after
        correcting a user's data. Without it the call is rate limited exactly
        like recalculate_my_rank.
        """
        def recalculate(stats: UserStats):
            if not force:
                check = self.rate_limiter.check(stats)
                if not check.allowed:
                    raise RateLimitedError(stats.user_id, check.next_allowed_at, check.reason)
            calculation = self.calculator.compute(stats)
            upgrade = self.evaluator.evaluate(stats, calculation)
            stats.last_recalculation_at = self.clock.now()
            return calculation, upgrade

        outcome = await self.store.read_modify_write(user_id, recalculate)
        calculation, upgrade = outcome.result
        stats = outcome.stats

        if upgrade.upgraded:
            if self.leaderboard is not None:
                await self.leaderboard.invalidate(upgrade.previous_rank)
                await self.leaderboard.invalidate(upgrade.new_rank)
            try:
                await self.notifier.notify_upgraded(stats, upgrade)
            except Exception as e:
                logger.error(f"Upgrade notification failed for user {user_id}: {e}", exc_info=True)

        logger.info(
            f"User {user_id} recalculated{' (forced)' if force else ''}: {calculation.percentage}% at {calculation.rank.value}"
            + (f", upgraded to {upgrade.new_rank.value}" if upgrade.upgraded else "")
        )

        return RecalculationResponse(
            success=True,
            rank_percentage=stats.rank_percentage,
            upgraded=upgrade.upgraded,
            current_rank=stats.current_rank,
            new_rank=upgrade.new_rank if upgrade.upgraded else None,
            breakdown=calculation.breakdown,
            blockers=list(calculation.blockers),
        )

    async def record_prediction(self, user_id: str) -> UserStats:
        now = self.clock.now()
        outcome = await self.store.read_modify_write(user_id, lambda stats: apply_prediction(stats, now))
        return outcome.stats

    async def record_resolution(self, user_id: str, data: PredictionResolutionData) -> UserStats:
        outcome = await self.store.read_modify_write(user_id, lambda stats: apply_resolution(stats, data))
        return outcome.stats

    async def get_rank_status(self, user_id: str) -> RankStatus:
        """Read-only overview: fresh calculation, next tier and leaderboard position."""
        stats = await self.store.get(user_id)
        calculation = self.calculator.compute(stats)
        next_config = self.catalog.get(calculation.next_rank) if calculation.next_rank else None
        position = await self.store.count_ahead(stats) + 1

        return RankStatus(
            stats=stats,
            calculation=calculation,
            next_rank_config=next_config,
            estimated_days_to_next_rank=estimate_days_to_next_rank(
                stats, calculation, next_config, self.clock.now()
            ),
            leaderboard_position=position,
        )
