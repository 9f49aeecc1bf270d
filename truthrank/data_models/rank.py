"""
Rank data models for the TruthRank engine.

Tier configuration records are immutable. UserStats is the mutable working copy
of a persisted user document; the engine reads it from the store, mutates it in
one pipeline and writes it back under an optimistic version check.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Rank(Enum):
    NOVICE = "novice"
    AMATEUR = "amateur"
    ANALYST = "analyst"
    PROFESSIONAL = "professional"
    EXPERT = "expert"
    MASTER = "master"


@dataclass(frozen=True)
class RankCriteria:
    """Qualification thresholds and score weights for one tier."""
    min_predictions: int
    min_accuracy: float  # Percentage (0-100)
    min_resolved_predictions: int  # Before accuracy counts
    min_active_weeks: int
    accuracy_weight: float
    consistency_weight: float
    volume_weight: float
    time_weight: float

    @property
    def total_weight(self) -> float:
        return self.accuracy_weight + self.consistency_weight + self.volume_weight + self.time_weight


@dataclass(frozen=True)
class RankConfig:
    """Static configuration for one rank tier."""
    id: Rank
    display_name: str
    display_color: str
    badge_icon: str
    min_time_gate_days: int  # Minimum days on platform before eligibility
    criteria: RankCriteria


@dataclass(frozen=True)
class RankUpgradeHistoryEntry:
    rank: Rank
    upgrade_date: datetime
    percentage_at_upgrade: float
    days_in_previous_rank: int


@dataclass
class UserStats:
    """Engine-owned statistics document for a single user."""
    user_id: str
    created_at: datetime
    current_rank: Rank
    current_rank_start_date: datetime
    display_name: str = "Anonymous"
    avatar_url: Optional[str] = None
    rank_percentage: float = 0.0
    last_rank_update_at: Optional[datetime] = None
    last_recalculation_at: Optional[datetime] = None
    rank_upgrade_history: List[RankUpgradeHistoryEntry] = field(default_factory=list)

    # Activity metrics
    total_predictions: int = 0
    total_resolved_predictions: int = 0
    correct_predictions: int = 0
    contrarian_wins_count: int = 0

    # Consistency metrics
    weekly_activity_count: int = 0
    last_active_at: Optional[datetime] = None
    inactivity_streaks: int = 0
    dormancy_flagged_at: Optional[datetime] = None
    # inactivity_streaks when the current tier began; only later streaks are penalized
    rank_start_inactivity_streaks: int = 0

    # Optimistic concurrency token, bumped by the store on every write
    version: int = 0

    @property
    def accuracy_rate(self) -> float:
        """Correct predictions as a percentage of resolved predictions."""
        if self.total_resolved_predictions <= 0:
            return 0.0
        return self.correct_predictions / self.total_resolved_predictions * 100


@dataclass(frozen=True)
class ScoreBreakdown:
    time_score: float
    accuracy_score: float
    consistency_score: float
    volume_score: float
    inactivity_penalty: float = 0.0


@dataclass(frozen=True)
class RankCalculationResult:
    """Outcome of scoring a user against their current tier."""
    rank: Rank
    percentage: float  # 0-100, tier-relative
    breakdown: ScoreBreakdown
    eligible_for_upgrade: bool
    next_rank: Optional[Rank]
    blockers: List[str]


@dataclass(frozen=True)
class RankUpgradeResult:
    upgraded: bool
    previous_rank: Rank
    new_rank: Rank
    achieved_at: datetime
    message: str
    history_entry: Optional[RankUpgradeHistoryEntry] = None


@dataclass(frozen=True)
class PredictionResolutionData:
    """Per-user view of a resolved prediction, consumed once by the engine."""
    prediction_id: str
    resolved_at: datetime
    outcome: str
    user_vote: Optional[str]
    total_votes: int
    majority_vote: str
    difficulty_weight: float  # 0-1, higher when the vote was closely split
    user_was_correct: bool
    user_was_contrarian: bool


@dataclass(frozen=True)
class RateLimitCheck:
    allowed: bool
    next_allowed_at: datetime
    reason: Optional[str] = None


@dataclass(frozen=True)
class RecalculationResponse:
    """Result returned to a user who asked for their rank to be refreshed."""
    success: bool
    rank_percentage: float
    upgraded: bool
    current_rank: Rank
    new_rank: Optional[Rank] = None
    breakdown: Optional[ScoreBreakdown] = None
    blockers: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RankStatus:
    """Read-only rank overview for a user's profile."""
    stats: UserStats
    calculation: RankCalculationResult
    next_rank_config: Optional[RankConfig]
    estimated_days_to_next_rank: Optional[int]
    leaderboard_position: int
