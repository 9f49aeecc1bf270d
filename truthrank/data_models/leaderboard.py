"""
Leaderboard data models.

Provides immutable data transfer objects for the per-tier leaderboard cache.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from truthrank.data_models.rank import Rank


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""
    user_id: str
    display_name: str
    avatar_url: Optional[str]
    rank_percentage: float
    accuracy_rate: float
    total_predictions: int
    position: int


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """Complete top-N snapshot for one tier."""
    rank: Rank
    entries: List[LeaderboardEntry]
    last_updated_at: datetime
    ttl_seconds: int

    def is_expired(self, now: datetime) -> bool:
        return (now - self.last_updated_at).total_seconds() > self.ttl_seconds
