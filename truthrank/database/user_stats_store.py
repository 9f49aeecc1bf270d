"""
Persistence of UserStats documents with optimistic concurrency.

Every write is conditional on the version that was read. A write that lost a
race raises StoreConflict; read_modify_write re-reads the latest document and
re-applies the caller's mutation so concurrent counter updates merge.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, List, NamedTuple, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from truthrank.config import Config
from truthrank.data_models.rank import Rank, RankUpgradeHistoryEntry, UserStats
from truthrank.database.models import RankUpgradeHistoryRecord, UserStatsRecord
from truthrank.operations.rank_catalog import RankCatalog
from truthrank.operations.validation import validate_user_stats
from truthrank.services.base import BaseService
from truthrank.utils.clock import ensure_utc
from truthrank.utils.exceptions import StoreConflict, UserNotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Scalar columns copied between UserStats and UserStatsRecord on every write
MUTABLE_FIELDS = (
    'display_name', 'avatar_url', 'current_rank', 'current_rank_start_date',
    'rank_percentage', 'last_rank_update_at', 'last_recalculation_at',
    'total_predictions', 'total_resolved_predictions', 'correct_predictions',
    'contrarian_wins_count', 'weekly_activity_count', 'inactivity_streaks',
    'last_active_at', 'dormancy_flagged_at', 'rank_start_inactivity_streaks',
)


class WriteOutcome(NamedTuple):
    stats: UserStats
    result: Any
    written: bool


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def _to_domain(record: UserStatsRecord) -> UserStats:
    history = [
        RankUpgradeHistoryEntry(
            rank=entry.rank,
            upgrade_date=ensure_utc(entry.upgrade_date),
            percentage_at_upgrade=entry.percentage_at_upgrade,
            days_in_previous_rank=entry.days_in_previous_rank,
        )
        for entry in record.upgrade_history
    ]
    return UserStats(
        user_id=record.user_id,
        display_name=record.display_name,
        avatar_url=record.avatar_url,
        created_at=ensure_utc(record.created_at),
        current_rank=record.current_rank,
        current_rank_start_date=ensure_utc(record.current_rank_start_date),
        rank_percentage=record.rank_percentage,
        last_rank_update_at=_utc(record.last_rank_update_at),
        last_recalculation_at=_utc(record.last_recalculation_at),
        rank_upgrade_history=history,
        total_predictions=record.total_predictions,
        total_resolved_predictions=record.total_resolved_predictions,
        correct_predictions=record.correct_predictions,
        contrarian_wins_count=record.contrarian_wins_count,
        weekly_activity_count=record.weekly_activity_count,
        last_active_at=_utc(record.last_active_at),
        inactivity_streaks=record.inactivity_streaks,
        dormancy_flagged_at=_utc(record.dormancy_flagged_at),
        rank_start_inactivity_streaks=record.rank_start_inactivity_streaks,
        version=record.version,
    )


def _history_record(user_id: str, sequence: int, entry: RankUpgradeHistoryEntry) -> RankUpgradeHistoryRecord:
    return RankUpgradeHistoryRecord(
        user_id=user_id,
        sequence=sequence,
        rank=entry.rank,
        upgrade_date=entry.upgrade_date,
        percentage_at_upgrade=entry.percentage_at_upgrade,
        days_in_previous_rank=entry.days_in_previous_rank,
    )


class UserStatsStore(BaseService):
    """Document store for UserStats backed by SQLAlchemy."""

    def __init__(self, session_factory, catalog: RankCatalog, max_retries: Optional[int] = None):
        super().__init__(session_factory)
        self.catalog = catalog
        self.max_retries = Config.STORE_CONFLICT_MAX_RETRIES if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    def _select(self):
        return select(UserStatsRecord).options(selectinload(UserStatsRecord.upgrade_history))

    async def find(self, user_id: str) -> Optional[UserStats]:
        async with self.get_session() as session:
            result = await session.execute(self._select().where(UserStatsRecord.user_id == user_id))
            record = result.scalar_one_or_none()
            return _to_domain(record) if record else None

    async def get(self, user_id: str) -> UserStats:
        """Get a user's stats document, raising UserNotFoundError if absent."""
        stats = await self.find(user_id)
        if stats is None:
            raise UserNotFoundError(user_id)
        return stats

    async def create(self, stats: UserStats) -> UserStats:
        """Insert a new stats document at version 0."""
        validate_user_stats(stats, self.catalog)
        try:
            async with self.get_session() as session:
                record = UserStatsRecord(
                    user_id=stats.user_id,
                    created_at=stats.created_at,
                    version=0,
                    **{name: getattr(stats, name) for name in MUTABLE_FIELDS}
                )
                session.add(record)
                for sequence, entry in enumerate(stats.rank_upgrade_history):
                    session.add(_history_record(stats.user_id, sequence, entry))
        except IntegrityError as e:
            raise ValidationError(f"user '{stats.user_id}' already exists") from e

        logger.info(f"Created stats for user {stats.user_id} at {stats.current_rank.value}")
        return dataclasses.replace(stats, version=0)

    async def put(self, stats: UserStats) -> UserStats:
        """
        Conditionally write a stats document.

        The update only applies if the stored version still equals
        stats.version. Upgrade history is append-only: entries beyond the
        stored count are inserted, a shorter history is rejected.

        Raises:
            StoreConflict: If another writer bumped the version first
            UserNotFoundError: If the document does not exist
            ValidationError: If the history would shrink
        """
        expected = stats.version
        async with self.get_session() as session:
            # Update first so the write lock is taken before any read
            result = await session.execute(
                update(UserStatsRecord)
                .where(UserStatsRecord.user_id == stats.user_id)
                .where(UserStatsRecord.version == expected)
                .values(version=expected + 1, **{name: getattr(stats, name) for name in MUTABLE_FIELDS})
            )
            if result.rowcount == 0:
                exists = await session.scalar(
                    select(func.count()).select_from(UserStatsRecord)
                    .where(UserStatsRecord.user_id == stats.user_id)
                )
                if not exists:
                    raise UserNotFoundError(stats.user_id)
                raise StoreConflict(stats.user_id, expected)

            stored = await session.scalar(
                select(func.count()).select_from(RankUpgradeHistoryRecord)
                .where(RankUpgradeHistoryRecord.user_id == stats.user_id)
            )
            if len(stats.rank_upgrade_history) < stored:
                raise ValidationError(f"upgrade history for user {stats.user_id} cannot shrink")
            for sequence in range(stored, len(stats.rank_upgrade_history)):
                session.add(_history_record(stats.user_id, sequence, stats.rank_upgrade_history[sequence]))

        return dataclasses.replace(stats, version=expected + 1)

    async def read_modify_write(self, user_id: str, mutator: Callable[[UserStats], Any]) -> WriteOutcome:
        """
        Apply mutator to the latest document and persist it atomically.

        The mutator receives a fresh copy on every attempt and may run more
        than once. When it leaves the document unchanged nothing is written.
        Errors raised by the mutator propagate without retry.
        """
        async def apply_mutation():
            stats = await self.get(user_id)
            before = dataclasses.asdict(stats)
            result = mutator(stats)
            if dataclasses.asdict(stats) == before:
                return WriteOutcome(stats, result, False)
            validate_user_stats(stats, self.catalog)
            saved = await self.put(stats)
            return WriteOutcome(saved, result, True)

        return await self.execute_with_retry(apply_mutation, max_retries=self.max_retries)

    async def scan(self, page_size: int, after_user_id: Optional[str] = None,
                   rank: Optional[Rank] = None,
                   inactive_before: Optional[datetime] = None) -> List[UserStats]:
        """One keyset page of documents in user_id order, optionally filtered."""
        stmt = self._select().order_by(UserStatsRecord.user_id).limit(page_size)
        if after_user_id is not None:
            stmt = stmt.where(UserStatsRecord.user_id > after_user_id)
        if rank is not None:
            stmt = stmt.where(UserStatsRecord.current_rank == rank)
        if inactive_before is not None:
            stmt = stmt.where(UserStatsRecord.last_active_at < inactive_before)

        async with self.get_session() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def iterate_pages(self, page_size: int, rank: Optional[Rank] = None,
                            inactive_before: Optional[datetime] = None) -> AsyncIterator[List[UserStats]]:
        after_user_id = None
        while True:
            page = await self.scan(page_size, after_user_id, rank=rank, inactive_before=inactive_before)
            if not page:
                return
            yield page
            if len(page) < page_size:
                return
            after_user_id = page[-1].user_id

    async def top_for_rank(self, rank: Rank, limit: int) -> List[UserStats]:
        """Highest standing users in a tier, in leaderboard order."""
        stmt = (
            self._select()
            .where(UserStatsRecord.current_rank == rank)
            .order_by(
                UserStatsRecord.rank_percentage.desc(),
                UserStatsRecord.total_predictions.desc(),
                UserStatsRecord.user_id.asc(),
            )
            .limit(limit)
        )
        async with self.get_session() as session:
            result = await session.execute(stmt)
            return [_to_domain(record) for record in result.scalars().all()]

    async def count_ahead(self, stats: UserStats) -> int:
        """Number of users in the same tier ranked above this user."""
        ahead = or_(
            UserStatsRecord.rank_percentage > stats.rank_percentage,
            and_(
                UserStatsRecord.rank_percentage == stats.rank_percentage,
                UserStatsRecord.total_predictions > stats.total_predictions,
            ),
            and_(
                UserStatsRecord.rank_percentage == stats.rank_percentage,
                UserStatsRecord.total_predictions == stats.total_predictions,
                UserStatsRecord.user_id < stats.user_id,
            ),
        )
        async with self.get_session() as session:
            count = await session.scalar(
                select(func.count()).select_from(UserStatsRecord)
                .where(UserStatsRecord.current_rank == stats.current_rank)
                .where(ahead)
            )
            return count or 0
