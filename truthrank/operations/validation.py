"""
Structural validation of UserStats documents.

Malformed stats are rejected before any scoring or mutation happens.
"""

from truthrank.data_models.rank import Rank, UserStats
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.utils.exceptions import ValidationError

COUNTER_FIELDS = (
    'total_predictions',
    'total_resolved_predictions',
    'correct_predictions',
    'contrarian_wins_count',
    'weekly_activity_count',
    'inactivity_streaks',
    'rank_start_inactivity_streaks',
)


def validate_user_stats(stats: UserStats, catalog: RankCatalog):
    """Raise ValidationError if the stats document breaks an invariant."""
    if not stats.user_id:
        raise ValidationError("user_id is required")

    for name in COUNTER_FIELDS:
        value = getattr(stats, name)
        if not isinstance(value, int) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")

    if stats.correct_predictions > stats.total_resolved_predictions:
        raise ValidationError("correct_predictions exceeds total_resolved_predictions")
    if stats.total_resolved_predictions > stats.total_predictions:
        raise ValidationError("total_resolved_predictions exceeds total_predictions")
    if stats.contrarian_wins_count > stats.correct_predictions:
        raise ValidationError("contrarian_wins_count exceeds correct_predictions")
    if stats.rank_start_inactivity_streaks > stats.inactivity_streaks:
        raise ValidationError("rank_start_inactivity_streaks exceeds inactivity_streaks")

    if not 0 <= stats.rank_percentage <= 100:
        raise ValidationError(f"rank_percentage {stats.rank_percentage} is outside 0-100")

    if not isinstance(stats.current_rank, Rank) or not catalog.contains(stats.current_rank):
        raise ValidationError(f"unknown current_rank {stats.current_rank!r}")
