"""Unit tests for dashboard snapshot assembly."""

from decimal import Decimal

import pytest

from pulseledger.domain.aggregator import AggregationResult, WindowAggregator
from pulseledger.domain.ports import IncompleteSnapshotError
from pulseledger.domain.records import ExpenseRecord, TransactionRecord
from pulseledger.domain.snapshot import assemble
from pulseledger.domain.windows import THIS_MONTH, TODAY, plan_windows

COUNTS = {"patients": 12, "doctors": 3, "beds": 20, "appointments": 4}


@pytest.fixture
def sums():
    plan = plan_windows("2024-03-15")
    aggregator = WindowAggregator()
    transactions = [
        TransactionRecord(id="T1", amount="100", status="COMPLETED", created_at="2024-03-15",
                          transaction_type="CONSULTATION"),
        TransactionRecord(id="T2", amount="-20", status="COMPLETED", created_at="2024-03-15",
                          transaction_type="PROCEDURE"),
        TransactionRecord(id="T3", amount="50", status="COMPLETED", created_at="2024-03-15"),
    ]
    expenses = [ExpenseRecord(id="E1", amount="40", expense_date="2024-03-15")]
    return aggregator.aggregate(transactions, plan), aggregator.aggregate_expenses(expenses, plan)


class TestAssemble:
    """Combining counts, revenue and expenses."""

    def test_net_daily_value(self, sums):
        """Test net = today revenue - today expenses - today refunds."""
        revenue, expenses = sums
        stats = assemble(COUNTS, revenue, expenses, "2024-03-15")
        assert stats.revenue[TODAY] == Decimal("130")
        assert stats.expenses[TODAY] == Decimal("40")
        assert stats.refunds[TODAY] == Decimal("20")
        assert stats.net_daily_value == Decimal("70")
        assert stats.transaction_counts[TODAY] == 3
        assert stats.counts.beds == 20
        assert stats.sample_ids[TODAY] == ["T1", "T2", "T3"]

    def test_window_bounds_reported(self, sums):
        """Test that each label carries its bounds."""
        revenue, expenses = sums
        stats = assemble(COUNTS, revenue, expenses, "2024-03-15")
        assert stats.windows[THIS_MONTH].start_date == "2024-03-01"
        assert stats.windows[THIS_MONTH].end_date == "2024-03-31"

    @pytest.mark.parametrize("missing", ["patients", "doctors", "beds", "appointments"])
    def test_missing_count_is_an_error(self, sums, missing):
        """Test that a missing count is never replaced by zero."""
        revenue, expenses = sums
        counts = {key: value for key, value in COUNTS.items() if key != missing}
        with pytest.raises(IncompleteSnapshotError):
            assemble(counts, revenue, expenses, "2024-03-15")

    def test_none_count_is_an_error(self, sums):
        """Test that a None count is treated as missing."""
        revenue, expenses = sums
        with pytest.raises(IncompleteSnapshotError):
            assemble({**COUNTS, "beds": None}, revenue, expenses, "2024-03-15")

    def test_mismatched_windows_are_an_error(self, sums):
        """Test that revenue and expense buckets must cover the same windows."""
        revenue, _ = sums
        partial = AggregationResult(buckets={TODAY: revenue.buckets[TODAY]})
        with pytest.raises(IncompleteSnapshotError):
            assemble(COUNTS, revenue, partial, "2024-03-15")

    def test_missing_today_window_is_an_error(self):
        """Test that the net daily value needs a today window."""
        empty = AggregationResult(buckets={})
        with pytest.raises(IncompleteSnapshotError):
            assemble(COUNTS, empty, empty, "2024-03-15")
