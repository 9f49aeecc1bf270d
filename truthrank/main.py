import argparse
import asyncio
import logging
import sys
import traceback
from typing import Optional

from truthrank.config import Config
from truthrank.data_models.rank import Rank
from truthrank.database.database import Database
from truthrank.database.user_stats_store import UserStatsStore
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.operations.upgrade_evaluator import UpgradeEvaluator
from truthrank.services.inactivity_job import InactivityDetectionJob
from truthrank.services.leaderboard import LeaderboardCache
from truthrank.services.notifier import LoggingNotifier, Notifier
from truthrank.services.rank_service import RankService
from truthrank.services.rate_limiter import RateLimiter
from truthrank.services.recalculation_job import RecalculationJob
from truthrank.services.scheduler import JobScheduler, ScheduledJob
from truthrank.utils.clock import Clock, SystemClock
from truthrank.utils.exceptions import TruthRankException
from truthrank.utils.redis_utils import RedisUtils
from truthrank.utils.score_calculator import ScoreCalculator
from truthrank.utils.logger import setup_logger


class TruthRankApp:
    """Wires the engine components around one database and clock."""

    def __init__(self, clock: Optional[Clock] = None, notifier: Optional[Notifier] = None,
                 database: Optional[Database] = None, catalog: Optional[RankCatalog] = None):
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotifier()
        self.db = database or Database()
        self.catalog = catalog or RankCatalog.default()
        self.redis_client = None
        self.logger = setup_logger(__name__)

        self.store: Optional[UserStatsStore] = None
        self.leaderboard: Optional[LeaderboardCache] = None
        self.rank_service: Optional[RankService] = None
        self.recalculation_job: Optional[RecalculationJob] = None
        self.inactivity_job: Optional[InactivityDetectionJob] = None

    async def setup(self):
        """Called once before any command runs"""
        self.logger.info("Setting up TruthRank engine...")

        await self.db.initialize()
        self.redis_client = await RedisUtils.create_redis_client()

        calculator = ScoreCalculator(self.catalog, self.clock)
        evaluator = UpgradeEvaluator(self.catalog, self.clock)

        self.store = UserStatsStore(self.db.session_factory, self.catalog)
        self.leaderboard = LeaderboardCache(self.store, self.catalog, self.clock)
        self.rank_service = RankService(
            self.store, self.catalog, calculator, evaluator,
            RateLimiter(self.clock), self.clock,
            leaderboard=self.leaderboard, notifier=self.notifier,
        )
        self.recalculation_job = RecalculationJob(
            self.store, calculator, evaluator, self.clock,
            notifier=self.notifier, leaderboard=self.leaderboard,
            redis_client=self.redis_client,
        )
        self.inactivity_job = InactivityDetectionJob(
            self.store, self.clock, notifier=self.notifier, redis_client=self.redis_client,
        )

        self.logger.info("TruthRank engine setup complete!")

    def build_scheduler(self) -> JobScheduler:
        jobs = [
            ScheduledJob('rank_recalculation', Config.DAILY_RECALCULATION_HOUR, self.recalculation_job.run),
            ScheduledJob(
                'inactivity_detection', Config.INACTIVITY_DETECTION_HOUR, self.inactivity_job.run,
                weekday=Config.INACTIVITY_DETECTION_WEEKDAY,
            ),
        ]
        return JobScheduler(self.clock, jobs, Config.SCHEDULE_TIMEZONE)

    async def close(self):
        """Cleanup on shutdown"""
        self.logger.info("Shutting down TruthRank engine...")

        if self.redis_client is not None:
            await self.redis_client.aclose()
        await self.db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='truthrank', description='TruthRank engine commands')
    subcommands = parser.add_subparsers(dest='command', required=True)

    subcommands.add_parser('schedule', help='Run the batch jobs on their schedule until interrupted')
    subcommands.add_parser('recalculate', help='Recalculate every user once')
    subcommands.add_parser('detect-inactivity', help='Run one inactivity detection pass')

    refresh = subcommands.add_parser('refresh-rank', help="Refresh one user's rank (rate limited unless forced)")
    refresh.add_argument('user_id')
    refresh.add_argument('--force', action='store_true', help='Skip the recalculation cooldown')

    leaderboard = subcommands.add_parser('leaderboard', help='Show the top users of a rank tier')
    leaderboard.add_argument('rank', choices=[rank.value for rank in Rank])

    return parser


async def run_command(app: TruthRankApp, args: argparse.Namespace):
    if args.command == 'schedule':
        await app.build_scheduler().run_forever()
    elif args.command == 'recalculate':
        print(await app.recalculation_job.run())
    elif args.command == 'detect-inactivity':
        print(await app.inactivity_job.run())
    elif args.command == 'refresh-rank':
        response = await app.rank_service.recalculate_user(args.user_id, force=args.force)
        print(f"{response.current_rank.value}: {response.rank_percentage}%"
              + (f" (upgraded to {response.new_rank.value})" if response.upgraded else ""))
        for blocker in response.blockers:
            print(f"  - {blocker}")
    elif args.command == 'leaderboard':
        for entry in await app.leaderboard.get(Rank(args.rank)):
            print(f"{entry.position:>3}. {entry.display_name} ({entry.user_id}) "
                  f"{entry.rank_percentage}% accuracy {entry.accuracy_rate}% "
                  f"predictions {entry.total_predictions}")


async def async_main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    Config.validate()

    app = TruthRankApp()
    try:
        await app.setup()
        await run_command(app, args)
        return 0
    except TruthRankException as e:
        print(e.user_message, file=sys.stderr)
        return 1
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
        return 1
    finally:
        await app.close()


def main():
    """Main entry point"""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
