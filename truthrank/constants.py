"""
Engine-wide constants for the TruthRank system.

This module contains the tuning values of the scoring formula and the default
rank ladder. Values that operators are expected to change per deployment
(cooldowns, thresholds, cache sizes) live in Config instead.
"""

from truthrank.data_models.rank import Rank, RankConfig, RankCriteria

class ScoringConstants:
    """Constants related to rank percentage calculation."""

    # Every tier's four weights must sum to this value
    WEIGHT_TOTAL = 100
    MAX_PERCENTAGE = 100.0

    # Accuracy at or below a coin flip earns nothing
    ACCURACY_BASELINE = 50.0

    # Inactivity penalty applied to the consistency sub-score. Streaks are
    # counted from the start of the current tier, one dormancy period per tier
    # is tolerated.
    INACTIVITY_STREAK_THRESHOLD = 1
    INACTIVITY_PENALTY_FRACTION = 0.10  # Per streak above the threshold
    MAX_INACTIVITY_PENALTY_FRACTION = 0.50

    # Contrarian wins count extra towards volume, capped
    CONTRARIAN_BONUS_MULTIPLIER = 1.5
    MAX_CONTRARIAN_MULTIPLIER = 1.2

    # Displayed percentages are rounded to one decimal
    PERCENTAGE_PRECISION = 1

class BlockerMessages:
    """User-facing reasons an upgrade is blocked."""

    INSUFFICIENT_PROGRESS = "insufficient progress"
    INSUFFICIENT_RESOLVED = "insufficient resolved predictions"
    TENURE_GATE = "tenure gate not met"
    INSUFFICIENT_WEEKS = "insufficient active weeks"
    TOP_RANK = "already at top rank"

class DifficultyConstants:
    """Constants for prediction difficulty weighting."""

    # Minimum votes before the vote split says anything about difficulty
    MIN_VOTES_FOR_DIFFICULTY = 10
    NEUTRAL_DIFFICULTY = 0.5


DEFAULT_RANK_CONFIGS = (
    RankConfig(
        id=Rank.NOVICE,
        display_name='Novice',
        display_color='#EF4444',
        badge_icon='🌱',
        min_time_gate_days=0,
        criteria=RankCriteria(
            min_predictions=3,
            min_accuracy=50,
            min_resolved_predictions=5,
            min_active_weeks=1,
            accuracy_weight=30,
            consistency_weight=15,
            volume_weight=5,
            time_weight=50,
        ),
    ),
    RankConfig(
        id=Rank.AMATEUR,
        display_name='Amateur',
        display_color='#3B82F6',
        badge_icon='📊',
        min_time_gate_days=7,
        criteria=RankCriteria(
            min_predictions=10,
            min_accuracy=55,
            min_resolved_predictions=5,
            min_active_weeks=2,
            accuracy_weight=30,
            consistency_weight=15,
            volume_weight=5,
            time_weight=50,
        ),
    ),
    RankConfig(
        id=Rank.ANALYST,
        display_name='Analyst',
        display_color='#A855F7',
        badge_icon='🔍',
        min_time_gate_days=60,
        criteria=RankCriteria(
            min_predictions=30,
            min_accuracy=60,
            min_resolved_predictions=10,
            min_active_weeks=8,
            accuracy_weight=30,
            consistency_weight=20,
            volume_weight=10,
            time_weight=40,
        ),
    ),
    RankConfig(
        id=Rank.PROFESSIONAL,
        display_name='Professional',
        display_color='#F59E0B',
        badge_icon='⭐',
        min_time_gate_days=120,
        criteria=RankCriteria(
            min_predictions=60,
            min_accuracy=65,
            min_resolved_predictions=15,
            min_active_weeks=16,
            accuracy_weight=30,
            consistency_weight=20,
            volume_weight=15,
            time_weight=35,
        ),
    ),
    RankConfig(
        id=Rank.EXPERT,
        display_name='Expert',
        display_color='#EC4899',
        badge_icon='🎯',
        min_time_gate_days=240,
        criteria=RankCriteria(
            min_predictions=100,
            min_accuracy=70,
            min_resolved_predictions=20,
            min_active_weeks=32,
            accuracy_weight=30,
            consistency_weight=25,
            volume_weight=15,
            time_weight=30,
        ),
    ),
    RankConfig(
        id=Rank.MASTER,
        display_name='Master',
        display_color='#22C55E',
        badge_icon='👑',
        min_time_gate_days=365,
        criteria=RankCriteria(
            min_predictions=150,
            min_accuracy=75,
            min_resolved_predictions=30,
            min_active_weeks=48,
            accuracy_weight=30,
            consistency_weight=25,
            volume_weight=20,
            time_weight=25,
        ),
    ),
)
