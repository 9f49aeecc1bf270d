"""
Rank percentage calculation.

Turns a user's activity counters into a tier-relative percentage made of four
weighted sub-scores (time, accuracy, consistency, volume) and decides whether
the hard floors of the next tier are cleared. The calculation is pure: the only
input besides the stats document is the injected clock.
"""

import logging
from typing import List, Optional

from truthrank.constants import BlockerMessages, ScoringConstants
from truthrank.data_models.rank import (
    RankCalculationResult, RankConfig, RankCriteria, ScoreBreakdown, UserStats
)
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.operations.validation import validate_user_stats
from truthrank.utils.clock import Clock, days_between

logger = logging.getLogger(__name__)


def _clip(value: float, upper: float) -> float:
    return max(0.0, min(value, upper))


class ScoreCalculator:
    """Computes RankCalculationResult records against the rank catalog."""

    def __init__(self, catalog: RankCatalog, clock: Clock):
        self.catalog = catalog
        self.clock = clock

    def compute(self, stats: UserStats, criteria: Optional[RankCriteria] = None) -> RankCalculationResult:
        """
        Score a user against their current tier.

        Args:
            stats: The user's stats document (not modified)
            criteria: Criteria to score against; defaults to the current tier's

        Returns:
            RankCalculationResult with the percentage, the sub-score breakdown,
            upgrade eligibility and every unmet gate for the next tier

        Raises:
            ValidationError: If the stats document is malformed
        """
        validate_user_stats(stats, self.catalog)
        now = self.clock.now()

        current = self.catalog.get(stats.current_rank)
        criteria = criteria or current.criteria
        next_rank = self.catalog.next_rank(stats.current_rank)
        next_config = self.catalog.get(next_rank) if next_rank else None

        days_in_rank = days_between(stats.current_rank_start_date, now)
        time_score = self.time_score(days_in_rank, criteria, current, next_config)
        accuracy_score = self.accuracy_score(stats, criteria)
        consistency_score, penalty = self.consistency_score(stats, criteria)
        volume_score = self.volume_score(stats, criteria)

        total = time_score + accuracy_score + consistency_score + volume_score
        percentage = round(
            max(0.0, min(total, ScoringConstants.MAX_PERCENTAGE)),
            ScoringConstants.PERCENTAGE_PRECISION
        )

        breakdown = ScoreBreakdown(
            time_score=time_score,
            accuracy_score=accuracy_score,
            consistency_score=consistency_score,
            volume_score=volume_score,
            inactivity_penalty=penalty,
        )

        if next_config is None:
            blockers = [BlockerMessages.TOP_RANK]
            eligible = False
        else:
            blockers = self._blockers(stats, percentage, criteria, next_config, now)
            eligible = not blockers

        logger.debug(
            f"Scored user {stats.user_id} at {stats.current_rank.value}: {percentage}% "
            f"(time={time_score:.2f}, accuracy={accuracy_score:.2f}, "
            f"consistency={consistency_score:.2f}, volume={volume_score:.2f})"
        )

        return RankCalculationResult(
            rank=stats.current_rank,
            percentage=percentage,
            breakdown=breakdown,
            eligible_for_upgrade=eligible,
            next_rank=next_rank,
            blockers=blockers,
        )

    @staticmethod
    def time_score(days_in_rank: int, criteria: RankCriteria,
                   current: RankConfig, next_config: Optional[RankConfig]) -> float:
        """Days in the current tier over the gap to the next tier's time gate."""
        weight = criteria.time_weight
        if next_config is None:
            return weight
        gate = next_config.min_time_gate_days - current.min_time_gate_days
        if gate <= 0:
            return weight
        return _clip(weight * days_in_rank / gate, weight)

    @staticmethod
    def accuracy_score(stats: UserStats, criteria: RankCriteria) -> float:
        weight = criteria.accuracy_weight
        # Too few resolved predictions to trust the rate
        if stats.total_resolved_predictions < criteria.min_resolved_predictions:
            return 0.0
        if stats.total_resolved_predictions == 0:
            return 0.0

        accuracy = stats.accuracy_rate
        if accuracy >= criteria.min_accuracy:
            return weight

        span = criteria.min_accuracy - ScoringConstants.ACCURACY_BASELINE
        if span <= 0:
            return 0.0
        return _clip(weight * (accuracy - ScoringConstants.ACCURACY_BASELINE) / span, weight)

    @staticmethod
    def consistency_score(stats: UserStats, criteria: RankCriteria):
        """Return (score, penalty actually subtracted)."""
        weight = criteria.consistency_weight
        if criteria.min_active_weeks <= 0:
            raw = weight
        else:
            raw = weight * min(1.0, stats.weekly_activity_count / criteria.min_active_weeks)

        streaks_in_rank = stats.inactivity_streaks - stats.rank_start_inactivity_streaks
        excess = streaks_in_rank - ScoringConstants.INACTIVITY_STREAK_THRESHOLD
        if excess <= 0:
            return raw, 0.0

        fraction = min(
            ScoringConstants.MAX_INACTIVITY_PENALTY_FRACTION,
            ScoringConstants.INACTIVITY_PENALTY_FRACTION * excess
        )
        penalty = min(weight * fraction, raw)
        return raw - penalty, penalty

    @staticmethod
    def volume_score(stats: UserStats, criteria: RankCriteria) -> float:
        weight = criteria.volume_weight
        if criteria.min_predictions <= 0:
            return weight
        if stats.total_predictions == 0:
            return 0.0

        contrarian_share = stats.contrarian_wins_count / stats.total_predictions
        multiplier = min(
            ScoringConstants.MAX_CONTRARIAN_MULTIPLIER,
            1 + contrarian_share * (ScoringConstants.CONTRARIAN_BONUS_MULTIPLIER - 1)
        )
        ratio = stats.total_predictions / criteria.min_predictions * multiplier
        return weight * min(1.0, ratio)

    def _blockers(self, stats: UserStats, percentage: float, criteria: RankCriteria,
                  next_config: RankConfig, now) -> List[str]:
        blockers = []
        if percentage < ScoringConstants.MAX_PERCENTAGE:
            blockers.append(BlockerMessages.INSUFFICIENT_PROGRESS)

        required_resolved = max(criteria.min_resolved_predictions,
                                next_config.criteria.min_resolved_predictions)
        if stats.total_resolved_predictions < required_resolved:
            blockers.append(BlockerMessages.INSUFFICIENT_RESOLVED)

        if days_between(stats.created_at, now) < next_config.min_time_gate_days:
            blockers.append(BlockerMessages.TENURE_GATE)

        required_weeks = max(criteria.min_active_weeks, next_config.criteria.min_active_weeks)
        if stats.weekly_activity_count < required_weeks:
            blockers.append(BlockerMessages.INSUFFICIENT_WEEKS)

        return blockers
