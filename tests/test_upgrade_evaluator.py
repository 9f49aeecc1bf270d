"""
UpgradeEvaluator tests: one-tier transitions and append-only history.
"""
from datetime import timedelta

import pytest

from truthrank.data_models.rank import Rank, RankUpgradeHistoryEntry
from truthrank.utils.exceptions import ValidationError

from conftest import NOW, make_stats, qualified_novice


class TestNoUpgrade:
    def test_records_percentage_without_advancing(self, calculator, evaluator):
        stats = make_stats(total_predictions=3)
        result = calculator.compute(stats)

        upgrade = evaluator.evaluate(stats, result)

        assert upgrade.upgraded is False
        assert upgrade.new_rank is Rank.NOVICE
        assert upgrade.history_entry is None
        assert stats.current_rank is Rank.NOVICE
        assert stats.rank_percentage == result.percentage
        assert stats.last_rank_update_at == NOW
        assert stats.rank_upgrade_history == []

    def test_unchanged_percentage_leaves_stats_untouched(self, calculator, evaluator, clock):
        stats = make_stats(total_predictions=3)
        evaluator.evaluate(stats, calculator.compute(stats))
        first_update = stats.last_rank_update_at

        clock.advance(hours=1)
        evaluator.evaluate(stats, calculator.compute(stats))

        assert stats.last_rank_update_at == first_update

    def test_result_for_other_tier_rejected(self, calculator, evaluator):
        stats = qualified_novice()
        result = calculator.compute(stats)
        stats.current_rank = Rank.AMATEUR

        with pytest.raises(ValidationError, match="computed for 'novice'"):
            evaluator.evaluate(stats, result)
        assert stats.rank_upgrade_history == []

    def test_top_tier_is_terminal(self, calculator, evaluator):
        stats = make_stats(
            current_rank=Rank.MASTER,
            days_old=1000,
            total_predictions=500,
            total_resolved_predictions=400,
            correct_predictions=380,
            weekly_activity_count=100,
        )

        upgrade = evaluator.evaluate(stats, calculator.compute(stats))

        assert upgrade.upgraded is False
        assert stats.current_rank is Rank.MASTER
        assert stats.rank_percentage == 100.0


class TestUpgrade:
    def test_advances_one_tier_and_resets(self, calculator, evaluator):
        stats = qualified_novice()
        result = calculator.compute(stats)

        upgrade = evaluator.evaluate(stats, result)

        assert upgrade.upgraded is True
        assert upgrade.previous_rank is Rank.NOVICE
        assert upgrade.new_rank is Rank.AMATEUR
        assert upgrade.achieved_at == NOW
        assert stats.current_rank is Rank.AMATEUR
        assert stats.current_rank_start_date == NOW
        assert stats.rank_percentage == 0
        assert stats.rank_upgrade_history == [
            RankUpgradeHistoryEntry(
                rank=Rank.AMATEUR,
                upgrade_date=NOW,
                percentage_at_upgrade=100.0,
                days_in_previous_rank=10,
            )
        ]
        assert upgrade.history_entry == stats.rank_upgrade_history[0]

    def test_upgrade_starts_a_fresh_inactivity_baseline(self, calculator, evaluator):
        stats = qualified_novice(inactivity_streaks=1)

        upgrade = evaluator.evaluate(stats, calculator.compute(stats))

        assert upgrade.upgraded is True
        assert stats.rank_start_inactivity_streaks == 1
        assert calculator.compute(stats).breakdown.inactivity_penalty == 0

    def test_never_skips_a_tier(self, calculator, evaluator):
        # Clears every gate up to master in one go
        stats = make_stats(
            days_old=400,
            total_predictions=1000,
            total_resolved_predictions=500,
            correct_predictions=450,
            weekly_activity_count=60,
        )

        upgrade = evaluator.evaluate(stats, calculator.compute(stats))

        assert upgrade.new_rank is Rank.AMATEUR
        assert len(stats.rank_upgrade_history) == 1

    def test_immediate_reevaluation_does_not_upgrade_again(self, calculator, evaluator):
        stats = make_stats(
            days_old=400,
            total_predictions=1000,
            total_resolved_predictions=500,
            correct_predictions=450,
            weekly_activity_count=60,
        )
        evaluator.evaluate(stats, calculator.compute(stats))

        second = evaluator.evaluate(stats, calculator.compute(stats))

        assert second.upgraded is False
        assert stats.current_rank is Rank.AMATEUR
        assert len(stats.rank_upgrade_history) == 1

    def test_history_is_append_only(self, calculator, evaluator, clock):
        earlier = RankUpgradeHistoryEntry(
            rank=Rank.NOVICE,
            upgrade_date=NOW - timedelta(days=30),
            percentage_at_upgrade=100.0,
            days_in_previous_rank=0,
        )
        stats = qualified_novice(rank_upgrade_history=[earlier])
        history_before = stats.rank_upgrade_history

        evaluator.evaluate(stats, calculator.compute(stats))

        assert len(stats.rank_upgrade_history) == 2
        assert stats.rank_upgrade_history[0] is earlier
        assert history_before == [earlier]

    def test_progresses_again_on_later_cycle(self, calculator, evaluator, clock):
        stats = make_stats(
            days_old=400,
            total_predictions=1000,
            total_resolved_predictions=500,
            correct_predictions=450,
            weekly_activity_count=60,
        )
        evaluator.evaluate(stats, calculator.compute(stats))

        clock.advance(days=60)
        upgrade = evaluator.evaluate(stats, calculator.compute(stats))

        assert upgrade.new_rank is Rank.ANALYST
        assert [entry.rank for entry in stats.rank_upgrade_history] == [Rank.AMATEUR, Rank.ANALYST]
        assert stats.rank_upgrade_history[1].days_in_previous_rank == 60
