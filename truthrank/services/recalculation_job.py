"""
Periodic rank recalculation across every user.

Pages through all stats documents in user_id order and, for each user, runs
score -> evaluate -> conditional persist inside one optimistic read-modify-write.
A failing or slow user is recorded in the job result and never stops the run.
Documents whose percentage and tier did not change are not rewritten, so an
immediate second run with no new activity touches nothing.
"""

import logging
from typing import Optional

from truthrank.config import Config
from truthrank.data_models.jobs import RankRecalculationJobResult
from truthrank.data_models.rank import UserStats
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.operations.upgrade_evaluator import UpgradeEvaluator
from truthrank.services.batch import PageRunner, describe_error
from truthrank.services.leaderboard import LeaderboardCache
from truthrank.services.notifier import LoggingNotifier, Notifier
from truthrank.utils.clock import Clock
from truthrank.utils.exceptions import PartialBatchFailure
from truthrank.utils.redis_utils import JobLock
from truthrank.utils.score_calculator import ScoreCalculator

logger = logging.getLogger(__name__)


class RecalculationJob:
    JOB_NAME = 'rank_recalculation'

    def __init__(self, store: UserStatsStore, calculator: ScoreCalculator,
                 evaluator: UpgradeEvaluator, clock: Clock,
                 notifier: Optional[Notifier] = None,
                 leaderboard: Optional[LeaderboardCache] = None,
                 redis_client=None,
                 page_size: Optional[int] = None,
                 runner: Optional[PageRunner] = None):
        self.store = store
        self.calculator = calculator
        self.evaluator = evaluator
        self.clock = clock
        self.notifier = notifier or LoggingNotifier()
        self.leaderboard = leaderboard
        self.redis_client = redis_client
        self.page_size = Config.BATCH_PAGE_SIZE if page_size is None else page_size
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        self.runner = runner or PageRunner()

    async def run(self) -> RankRecalculationJobResult:
        result = RankRecalculationJobResult(started_at=self.clock.now())
        lock = JobLock(self.redis_client, self.JOB_NAME, Config.JOB_LOCK_TTL_SECONDS)
        if not await lock.acquire():
            logger.info("Rank recalculation already running elsewhere, skipping")
            result.skipped = True
            result.completed_at = self.clock.now()
            return result

        logger.info("Starting rank recalculation job")
        try:
            async for page in self.store.iterate_pages(self.page_size):
                outcomes = await self.runner.run([stats.user_id for stats in page], self._process_user)
                for outcome in outcomes:
                    if outcome.error is not None:
                        failure = PartialBatchFailure(outcome.user_id, outcome.error)
                        logger.error(str(failure))
                        result.record_error(outcome.user_id, describe_error(outcome.error))
                        continue
                    result.users_processed += 1
                    if outcome.value:
                        result.upgrades_triggered += 1
                await lock.extend()
        finally:
            await lock.release()

        if self.leaderboard is not None:
            try:
                await self.leaderboard.refresh_all()
            except Exception as e:
                logger.error(f"Leaderboard refresh after recalculation failed: {e}", exc_info=True)

        result.completed_at = self.clock.now()
        logger.info(
            f"Rank recalculation finished: {result.users_processed} processed, "
            f"{result.upgrades_triggered} upgrades, {result.errors} errors"
        )
        return result

    async def _process_user(self, user_id: str) -> bool:
        def recalculate(stats: UserStats):
            calculation = self.calculator.compute(stats)
            return self.evaluator.evaluate(stats, calculation)

        outcome = await self.store.read_modify_write(user_id, recalculate)
        upgrade = outcome.result
        if not upgrade.upgraded:
            return False

        try:
            await self.notifier.notify_upgraded(outcome.stats, upgrade)
        except Exception as e:
            logger.error(f"Upgrade notification failed for user {user_id}: {e}", exc_info=True)
        return True
