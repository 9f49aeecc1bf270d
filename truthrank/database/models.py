from sqlalchemy import (
    Column, Integer, String, DateTime, Float, ForeignKey,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

from truthrank.data_models.rank import Rank

Base = declarative_base()


class UserStatsRecord(Base):
    __tablename__ = 'user_stats'

    user_id = Column(String(128), primary_key=True)
    display_name = Column(String(100), nullable=False, default='Anonymous')
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    # Rank state
    current_rank = Column(SQLEnum(Rank), nullable=False)
    current_rank_start_date = Column(DateTime(timezone=True), nullable=False)
    rank_percentage = Column(Float, nullable=False, default=0.0)
    last_rank_update_at = Column(DateTime(timezone=True), nullable=True)
    last_recalculation_at = Column(DateTime(timezone=True), nullable=True)

    # Activity counters
    total_predictions = Column(Integer, nullable=False, default=0)
    total_resolved_predictions = Column(Integer, nullable=False, default=0)
    correct_predictions = Column(Integer, nullable=False, default=0)
    contrarian_wins_count = Column(Integer, nullable=False, default=0)
    weekly_activity_count = Column(Integer, nullable=False, default=0)
    inactivity_streaks = Column(Integer, nullable=False, default=0)
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    dormancy_flagged_at = Column(DateTime(timezone=True), nullable=True)
    rank_start_inactivity_streaks = Column(Integer, nullable=False, default=0)

    # Optimistic concurrency token
    version = Column(Integer, nullable=False, default=0)

    upgrade_history = relationship(
        "RankUpgradeHistoryRecord",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="RankUpgradeHistoryRecord.sequence",
    )

    __table_args__ = (
        CheckConstraint('total_predictions >= 0', name='ck_total_predictions_non_negative'),
        CheckConstraint('total_resolved_predictions >= 0', name='ck_resolved_non_negative'),
        CheckConstraint('correct_predictions >= 0', name='ck_correct_non_negative'),
        CheckConstraint('contrarian_wins_count >= 0', name='ck_contrarian_non_negative'),
        CheckConstraint('weekly_activity_count >= 0', name='ck_weekly_activity_non_negative'),
        CheckConstraint('inactivity_streaks >= 0', name='ck_inactivity_streaks_non_negative'),
        CheckConstraint('rank_start_inactivity_streaks <= inactivity_streaks', name='ck_rank_start_streaks_le_streaks'),
        CheckConstraint('correct_predictions <= total_resolved_predictions', name='ck_correct_le_resolved'),
        CheckConstraint('total_resolved_predictions <= total_predictions', name='ck_resolved_le_total'),
        CheckConstraint('rank_percentage >= 0 AND rank_percentage <= 100', name='ck_rank_percentage_range'),
        Index('ix_user_stats_rank_standing', 'current_rank', 'rank_percentage', 'total_predictions'),
        Index('ix_user_stats_last_active_at', 'last_active_at'),
    )

    def __repr__(self):
        return f"<UserStatsRecord(user_id='{self.user_id}', rank={self.current_rank}, version={self.version})>"


class RankUpgradeHistoryRecord(Base):
    """Append-only audit trail of rank upgrades."""
    __tablename__ = 'rank_upgrade_history'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(128), ForeignKey('user_stats.user_id', ondelete='CASCADE'), nullable=False)
    sequence = Column(Integer, nullable=False)  # 0-based position in the user's history
    rank = Column(SQLEnum(Rank), nullable=False)
    upgrade_date = Column(DateTime(timezone=True), nullable=False)
    percentage_at_upgrade = Column(Float, nullable=False)
    days_in_previous_rank = Column(Integer, nullable=False)

    user = relationship("UserStatsRecord", back_populates="upgrade_history")

    __table_args__ = (
        UniqueConstraint('user_id', 'sequence', name='uq_rank_history_user_sequence'),
        CheckConstraint('days_in_previous_rank >= 0', name='ck_days_in_previous_rank_non_negative'),
    )
