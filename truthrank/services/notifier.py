"""
Notification hooks for rank events.

Delivery is outside the engine; implementations decide how users hear about
upgrades and dormancy. Callers treat notifier failures as non-fatal.
"""

import logging
from abc import ABC, abstractmethod

from truthrank.data_models.rank import RankUpgradeResult, UserStats

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def notify_upgraded(self, stats: UserStats, upgrade: RankUpgradeResult):
        """Called after an upgrade has been persisted."""
        pass

    @abstractmethod
    async def notify_inactive(self, stats: UserStats):
        """Called once per newly detected dormancy period."""
        pass


class LoggingNotifier(Notifier):
    """Default notifier that only writes to the log."""

    async def notify_upgraded(self, stats: UserStats, upgrade: RankUpgradeResult):
        logger.info(
            f"🎉 {stats.display_name} ({stats.user_id}) upgraded "
            f"{upgrade.previous_rank.value} -> {upgrade.new_rank.value}"
        )

    async def notify_inactive(self, stats: UserStats):
        logger.info(
            f"💤 {stats.display_name} ({stats.user_id}) inactive since "
            f"{stats.last_active_at.isoformat() if stats.last_active_at else 'never'}"
        )
