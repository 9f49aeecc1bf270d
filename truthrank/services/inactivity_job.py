"""
Periodic dormancy detection.

A user is dormant once last_active_at is older than the dormancy threshold.
Each dormancy period is counted once: dormancy_flagged_at records when the
current period was flagged, and a period is new only when the user has been
active since that flag (or was never flagged). This job is the only writer of
inactivity_streaks.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from truthrank.config import Config
from truthrank.data_models.jobs import InactivityDetectionJobResult
from truthrank.data_models.rank import UserStats
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.services.batch import PageRunner, describe_error
from truthrank.services.notifier import LoggingNotifier, Notifier
from truthrank.utils.clock import Clock, ensure_utc
from truthrank.utils.exceptions import PartialBatchFailure
from truthrank.utils.redis_utils import JobLock

logger = logging.getLogger(__name__)


class DormancyOutcome(Enum):
    ACTIVE = "active"  # Became active again after the scan
    ALREADY_FLAGGED = "already_flagged"
    PENALIZED = "penalized"
    PENALIZED_AND_NOTIFIED = "penalized_and_notified"


def flag_dormancy(stats: UserStats, threshold: datetime, now: datetime) -> DormancyOutcome:
    """Count a new dormancy period on the stats working copy."""
    if stats.last_active_at is None or ensure_utc(stats.last_active_at) >= threshold:
        return DormancyOutcome.ACTIVE
    if stats.dormancy_flagged_at is not None and \
            ensure_utc(stats.dormancy_flagged_at) >= ensure_utc(stats.last_active_at):
        return DormancyOutcome.ALREADY_FLAGGED

    stats.inactivity_streaks += 1
    stats.dormancy_flagged_at = now
    return DormancyOutcome.PENALIZED


class InactivityDetectionJob:
    JOB_NAME = 'inactivity_detection'

    def __init__(self, store: UserStatsStore, clock: Clock,
                 notifier: Optional[Notifier] = None,
                 redis_client=None,
                 dormancy_days: Optional[int] = None,
                 page_size: Optional[int] = None,
                 runner: Optional[PageRunner] = None):
        self.store = store
        self.clock = clock
        self.notifier = notifier or LoggingNotifier()
        self.redis_client = redis_client
        self.dormancy = timedelta(
            days=Config.DORMANCY_THRESHOLD_DAYS if dormancy_days is None else dormancy_days
        )
        self.page_size = Config.BATCH_PAGE_SIZE if page_size is None else page_size
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        self.runner = runner or PageRunner()

    async def run(self) -> InactivityDetectionJobResult:
        now = self.clock.now()
        result = InactivityDetectionJobResult(started_at=now)
        lock = JobLock(self.redis_client, self.JOB_NAME, Config.JOB_LOCK_TTL_SECONDS)
        if not await lock.acquire():
            logger.info("Inactivity detection already running elsewhere, skipping")
            result.skipped = True
            result.completed_at = self.clock.now()
            return result

        threshold = now - self.dormancy
        logger.info(f"Starting inactivity detection for users inactive since {threshold.isoformat()}")

        async def process(user_id: str) -> DormancyOutcome:
            return await self._process_user(user_id, threshold, now)

        try:
            async for page in self.store.iterate_pages(self.page_size, inactive_before=threshold):
                outcomes = await self.runner.run([stats.user_id for stats in page], process)
                for outcome in outcomes:
                    if outcome.error is not None:
                        failure = PartialBatchFailure(outcome.user_id, outcome.error)
                        logger.error(str(failure))
                        result.record_error(outcome.user_id, describe_error(outcome.error))
                        continue
                    if outcome.value is DormancyOutcome.ACTIVE:
                        continue
                    result.inactive_users_found += 1
                    if outcome.value in (DormancyOutcome.PENALIZED, DormancyOutcome.PENALIZED_AND_NOTIFIED):
                        result.penalties_applied += 1
                    if outcome.value is DormancyOutcome.PENALIZED_AND_NOTIFIED:
                        result.notifications_sent += 1
                await lock.extend()
        finally:
            await lock.release()

        result.completed_at = self.clock.now()
        logger.info(
            f"Inactivity detection finished: {result.inactive_users_found} inactive, "
            f"{result.penalties_applied} penalized, {result.notifications_sent} notified, "
            f"{result.errors} errors"
        )
        return result

    async def _process_user(self, user_id: str, threshold: datetime, now: datetime) -> DormancyOutcome:
        outcome = await self.store.read_modify_write(
            user_id, lambda stats: flag_dormancy(stats, threshold, now)
        )
        if outcome.result is not DormancyOutcome.PENALIZED:
            return outcome.result

        try:
            await self.notifier.notify_inactive(outcome.stats)
        except Exception as e:
            logger.error(f"Inactivity notification failed for user {user_id}: {e}", exc_info=True)
            return DormancyOutcome.PENALIZED
        return DormancyOutcome.PENALIZED_AND_NOTIFIED
