"""
Activity ingestion: folds prediction and resolution events into UserStats counters.

Functions here mutate the working copy they receive; callers wrap them in the
store's read-modify-write so concurrent events merge instead of overwriting.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from truthrank.constants import DifficultyConstants
from truthrank.data_models.rank import PredictionResolutionData, UserStats
from truthrank.utils.clock import ensure_utc
from truthrank.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


def difficulty_weight(vote_counts: Dict[str, int]) -> float:
    """
    Difficulty in [0, 1] from how evenly the votes were split.

    An even split across all options gives 1, a unanimous vote gives 0. With
    too few votes the split says nothing, so a neutral weight is returned.
    """
    total = sum(vote_counts.values())
    if total < DifficultyConstants.MIN_VOTES_FOR_DIFFICULTY:
        return DifficultyConstants.NEUTRAL_DIFFICULTY

    options = len(vote_counts)
    if options < 2:
        return 0.0

    max_share = max(vote_counts.values()) / total
    even_share = 1 / options
    skew = (max_share - even_share) / (1 - even_share)
    return max(0.0, min(1.0, 1 - skew))


def majority_vote(vote_counts: Dict[str, int]) -> str:
    # Ties go to the alphabetically first option so the result is stable
    return min(vote_counts, key=lambda option: (-vote_counts[option], option))


def build_resolution_data(prediction_id: str, resolved_at: datetime, outcome: str,
                          user_vote: Optional[str], vote_counts: Dict[str, int]) -> PredictionResolutionData:
    """Build the per-user view of a resolved prediction from its vote tally."""
    if not vote_counts:
        raise ValidationError(f"prediction {prediction_id} has no votes")
    if any(count < 0 for count in vote_counts.values()):
        raise ValidationError(f"prediction {prediction_id} has negative vote counts")
    if user_vote is not None and user_vote not in vote_counts:
        raise ValidationError(f"vote '{user_vote}' is not an option of prediction {prediction_id}")

    majority = majority_vote(vote_counts)
    correct = user_vote is not None and user_vote == outcome
    contrarian = user_vote is not None and user_vote != majority

    return PredictionResolutionData(
        prediction_id=prediction_id,
        resolved_at=ensure_utc(resolved_at),
        outcome=outcome,
        user_vote=user_vote,
        total_votes=sum(vote_counts.values()),
        majority_vote=majority,
        difficulty_weight=difficulty_weight(vote_counts),
        user_was_correct=correct,
        user_was_contrarian=contrarian,
    )


def iso_week(value: datetime):
    year, week, _ = ensure_utc(value).isocalendar()
    return year, week


def apply_prediction(stats: UserStats, now: datetime):
    """Count a new prediction and mark the user active for this ISO week."""
    if stats.last_active_at is None or iso_week(stats.last_active_at) != iso_week(now):
        stats.weekly_activity_count += 1
    stats.total_predictions += 1
    stats.last_active_at = now


def apply_resolution(stats: UserStats, data: PredictionResolutionData):
    """Fold one resolved prediction into the user's accuracy counters."""
    if data.user_vote is None:
        raise ValidationError(f"user {stats.user_id} did not vote on prediction {data.prediction_id}")
    if stats.total_resolved_predictions + 1 > stats.total_predictions:
        raise ValidationError(f"user {stats.user_id} has no unresolved prediction to resolve")

    stats.total_resolved_predictions += 1
    if data.user_was_correct:
        stats.correct_predictions += 1
        if data.user_was_contrarian:
            stats.contrarian_wins_count += 1

    logger.debug(
        f"Resolved prediction {data.prediction_id} for user {stats.user_id}: "
        f"correct={data.user_was_correct}, contrarian={data.user_was_contrarian}, "
        f"difficulty={data.difficulty_weight:.2f}"
    )
