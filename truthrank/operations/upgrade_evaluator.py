"""
Rank upgrade state machine.

States are the catalog tiers in ladder order, the only transition is a
one-tier upgrade and the top tier is terminal. The evaluator mutates the
UserStats working copy it is given; persisting it is the caller's job.
"""

import logging

from truthrank.data_models.rank import (
    RankCalculationResult, RankUpgradeHistoryEntry, RankUpgradeResult, UserStats
)
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.utils.clock import Clock, days_between
from truthrank.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class UpgradeEvaluator:
    """Applies a RankCalculationResult to a user's stats."""

    def __init__(self, catalog: RankCatalog, clock: Clock):
        self.catalog = catalog
        self.clock = clock

    def evaluate(self, stats: UserStats, result: RankCalculationResult) -> RankUpgradeResult:
        """
        Record the calculated percentage and advance at most one tier.

        last_rank_update_at only moves when the percentage or the tier actually
        changes, so re-evaluating an unchanged result leaves the stats untouched.

        Raises:
            ValidationError: If the result was computed for a different tier
        """
        if result.rank != stats.current_rank:
            raise ValidationError(
                f"result computed for '{result.rank.value}' but user is '{stats.current_rank.value}'"
            )

        now = self.clock.now()
        previous_rank = stats.current_rank
        next_rank = self.catalog.next_rank(previous_rank)

        if not result.eligible_for_upgrade or next_rank is None:
            if stats.rank_percentage != result.percentage:
                stats.rank_percentage = result.percentage
                stats.last_rank_update_at = now
            return RankUpgradeResult(
                upgraded=False,
                previous_rank=previous_rank,
                new_rank=previous_rank,
                achieved_at=now,
                message=f"{result.percentage}% towards {self._next_name(next_rank)}",
            )

        entry = RankUpgradeHistoryEntry(
            rank=next_rank,
            upgrade_date=now,
            percentage_at_upgrade=result.percentage,
            days_in_previous_rank=days_between(stats.current_rank_start_date, now),
        )
        stats.rank_upgrade_history = stats.rank_upgrade_history + [entry]
        stats.current_rank = next_rank
        stats.current_rank_start_date = now
        stats.rank_start_inactivity_streaks = stats.inactivity_streaks
        stats.rank_percentage = 0.0
        stats.last_rank_update_at = now

        display_name = self.catalog.get(next_rank).display_name
        logger.info(
            f"User {stats.user_id} upgraded {previous_rank.value} -> {next_rank.value} "
            f"after {entry.days_in_previous_rank} days"
        )

        return RankUpgradeResult(
            upgraded=True,
            previous_rank=previous_rank,
            new_rank=next_rank,
            achieved_at=now,
            message=f"Promoted to {display_name}!",
            history_entry=entry,
        )

    def _next_name(self, next_rank) -> str:
        if next_rank is None:
            return "top rank maintenance"
        return self.catalog.get(next_rank).display_name
