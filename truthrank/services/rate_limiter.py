"""
Cooldown limiter for interactive rank recalculation.

The limiter is stateless: the last recalculation time lives on the user's
stats document, so the check survives restarts and works across processes.
Batch jobs never consult it.
"""

import logging
from datetime import timedelta
from typing import Optional

from truthrank.config import Config
from truthrank.data_models.rank import RateLimitCheck, UserStats
from truthrank.utils.clock import Clock, ensure_utc

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-cooldown limiter keyed on UserStats.last_recalculation_at."""

    def __init__(self, clock: Clock, cooldown_seconds: Optional[int] = None):
        self.clock = clock
        if cooldown_seconds is None:
            cooldown_seconds = Config.RECALCULATION_COOLDOWN_SECONDS
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must not be negative")
        self.cooldown = timedelta(seconds=cooldown_seconds)

    def check(self, stats: UserStats) -> RateLimitCheck:
        """Check whether the user may trigger a recalculation now."""
        now = self.clock.now()
        if stats.last_recalculation_at is None:
            return RateLimitCheck(allowed=True, next_allowed_at=now)

        next_allowed_at = ensure_utc(stats.last_recalculation_at) + self.cooldown
        if now >= next_allowed_at:
            return RateLimitCheck(allowed=True, next_allowed_at=now)

        remaining = next_allowed_at - now
        minutes = max(1, int(remaining.total_seconds() // 60))
        logger.debug(f"Recalculation for user {stats.user_id} blocked for another {remaining}")
        return RateLimitCheck(
            allowed=False,
            next_allowed_at=next_allowed_at,
            reason=f"Rank was refreshed recently. Try again in {minutes} minute(s).",
        )
