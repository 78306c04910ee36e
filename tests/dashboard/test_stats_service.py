"""End-to-end tests for the dashboard statistics service on an in-memory store.

Reference day is Friday 2024-03-15: ThisWeek is 2024-03-09..15 and
ThisMonth is 2024-03-01..31.
"""

import asyncio
import time
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from pulseledger.dashboard.services.stats_service import (
    DashboardStatsService,
    gather_or_cancel,
    link_entry_dates,
)
from pulseledger.domain.exclusion import ExclusionRule
from pulseledger.domain.ports import FetchError, Result, StoreErrorKind

REFERENCE_DAY = date(2024, 3, 15)


@pytest.fixture
def service(seeded_store, dashboard_config):
    config = dashboard_config.model_copy(update={
        "exclusion_rules": [ExclusionRule(doctor="dr. rao", department="ORTHO")],
    })
    return DashboardStatsService(seeded_store, config, clock=lambda: REFERENCE_DAY)


class BrokenEntityStore:
    """Delegates to a real store but fails every read of one entity."""

    store_type = "duckdb"

    def __init__(self, inner, broken_entity, delay=0.0):
        self.inner = inner
        self.broken_entity = broken_entity
        self.delay = delay

    def query_records(self, entity, filters, start, end, columns=None):
        if self.delay:
            time.sleep(self.delay)
        if entity == self.broken_entity:
            return Result.failure_result("connection reset by peer", error_type=StoreErrorKind.CONNECTION.value)
        return self.inner.query_records(entity, filters, start, end, columns)

    def count_records(self, entity, filters):
        if self.delay:
            time.sleep(self.delay)
        return self.inner.count_records(entity, filters)


class TestStandardWindows:
    """Snapshot without an explicit range."""

    @pytest.mark.asyncio
    async def test_snapshot_figures(self, service):
        """Test revenue, expenses, refunds and counts for the reference day."""
        result = await service.get_dashboard_stats()

        assert result.is_success(), result.error
        stats = result.value
        assert stats.reference_date == "2024-03-15"
        assert stats.revenue == {
            "today": Decimal("130"),
            "this_week": Decimal("170"),
            "this_month": Decimal("195"),
        }
        assert stats.transaction_counts == {"today": 3, "this_week": 4, "this_month": 5}
        assert stats.refunds["today"] == Decimal("20")
        assert stats.expenses == {
            "today": Decimal("30"),
            "this_week": Decimal("45"),
            "this_month": Decimal("45"),
        }
        assert stats.net_daily_value == Decimal("80")
        assert stats.undated_records == 0

    @pytest.mark.asyncio
    async def test_counts(self, service):
        """Test active patients, active doctors, beds and today's appointments."""
        stats = (await service.get_dashboard_stats()).value

        assert stats.counts.patients == 2
        assert stats.counts.doctors == 1
        assert stats.counts.beds == 3
        assert stats.counts.appointments == 2

    @pytest.mark.asyncio
    async def test_backdated_entry_moves_transaction(self, service):
        """Test that a backdated patient entry pulls its transaction out of March."""
        stats = (await service.get_dashboard_stats()).value

        month_samples = stats.sample_ids["this_month"]
        assert "T004" not in month_samples
        assert "T008" in month_samples

    @pytest.mark.asyncio
    async def test_excluded_pair_and_other_tenant_are_left_out(self, service):
        """Test that the excluded doctor/department and tenant H2 never count."""
        stats = (await service.get_dashboard_stats()).value

        for samples in stats.sample_ids.values():
            assert "T006" not in samples
            assert "T100" not in samples
            assert "T005" not in samples

    @pytest.mark.asyncio
    async def test_today_override(self, service):
        """Test that an explicit today replaces the clock."""
        stats = (await service.get_dashboard_stats(today="2024-03-11")).value

        assert stats.revenue["today"] == Decimal("40")
        assert stats.counts.appointments == 0


class TestRangeMode:
    """Snapshot for an explicit inclusive range."""

    @pytest.mark.asyncio
    async def test_windows_are_intersected_with_range(self, service):
        """Test that every window is clipped and the range end is the reference day."""
        result = await service.get_dashboard_stats(start_date="2024-03-10", end_date="2024-03-12")

        assert result.is_success(), result.error
        stats = result.value
        assert stats.reference_date == "2024-03-12"
        assert stats.windows["range"].model_dump() == {"start_date": "2024-03-10", "end_date": "2024-03-12"}
        assert stats.windows["this_week"].start_date == "2024-03-10"
        assert stats.windows["this_month"].end_date == "2024-03-12"
        assert stats.revenue == {
            "today": Decimal("0"),
            "this_week": Decimal("40"),
            "this_month": Decimal("40"),
            "range": Decimal("40"),
        }
        assert stats.expenses["today"] == Decimal("15")
        assert stats.net_daily_value == Decimal("-15")
        assert stats.counts.appointments == 0

    @pytest.mark.asyncio
    async def test_range_counts_appointments_of_the_whole_range(self, service):
        """Test that appointments are counted over the requested range."""
        stats = (await service.get_dashboard_stats(start_date="2024-03-15", end_date="2024-03-16")).value

        assert stats.counts.appointments == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [
        ("2024-03-12", None),
        (None, "2024-03-12"),
        ("2024-03-12", "2024-03-10"),
        ("2024-13-01", "2024-13-02"),
    ])
    async def test_invalid_range_is_a_validation_failure(self, service, start, end):
        """Test that malformed ranges fail before anything is fetched."""
        result = await service.get_dashboard_stats(start_date=start, end_date=end)

        assert result.is_failure()
        assert result.error_type == "ValidationError"


class TestFailures:
    """A failed sub-fetch fails the whole snapshot."""

    @pytest.mark.asyncio
    async def test_fetch_failure_is_not_a_zero(self, seeded_store, dashboard_config):
        """Test that a failed expense fetch yields a failure, not zero expenses."""
        store = BrokenEntityStore(seeded_store, "expenses")
        service = DashboardStatsService(store, dashboard_config, clock=lambda: REFERENCE_DAY)

        result = await service.get_dashboard_stats()

        assert result.is_failure()
        assert result.value is None
        assert result.error_type == "FetchError"
        assert result.error_details["entity"] == "expenses"
        assert result.error_details["kind"] == StoreErrorKind.CONNECTION.value

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, seeded_store, dashboard_config):
        """Test that cancelling the refresh cancels it instead of returning a snapshot."""
        store = BrokenEntityStore(seeded_store, "none", delay=0.2)
        service = DashboardStatsService(store, dashboard_config, clock=lambda: REFERENCE_DAY)

        task = asyncio.ensure_future(service.get_dashboard_stats())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestNarrowedSchema:
    """Stores that lack optional transaction columns."""

    @staticmethod
    def drop_column(store, column):
        store._get_connection().execute(f'ALTER TABLE patient_transactions DROP COLUMN "{column}"')

    @pytest.mark.asyncio
    async def test_missing_transaction_type_keeps_exclusion_and_dates(self, service, seeded_store):
        """Test that the core-column retry still excludes and dates transactions."""
        self.drop_column(seeded_store, "transaction_type")

        result = await service.get_dashboard_stats()

        assert result.is_success(), result.error
        stats = result.value
        assert stats.revenue == {
            "today": Decimal("130"),
            "this_week": Decimal("170"),
            "this_month": Decimal("195"),
        }
        for samples in stats.sample_ids.values():
            assert "T006" not in samples
        assert "T008" not in stats.sample_ids["today"]

    @pytest.mark.asyncio
    async def test_missing_exclusion_column_fails_the_snapshot(self, service, seeded_store):
        """Test that exclusion is never silently skipped."""
        self.drop_column(seeded_store, "department")

        result = await service.get_dashboard_stats()

        assert result.is_failure()
        assert result.error_type == "FetchError"
        assert result.error_details["entity"] == "transactions"
        assert result.error_details["kind"] == StoreErrorKind.MISSING_COLUMN.value


class TestDailyRevenue:
    """Per-day revenue series."""

    @pytest.mark.asyncio
    async def test_this_month_by_default(self, service):
        """Test the per-day totals of the reference month."""
        result = await service.get_daily_revenue()

        assert result.is_success(), result.error
        assert result.value == {
            "2024-03-02": (Decimal("25"), 1),
            "2024-03-11": (Decimal("40"), 1),
            "2024-03-15": (Decimal("130"), 3),
        }

    @pytest.mark.asyncio
    async def test_explicit_range(self, service):
        """Test that a range limits the series."""
        result = await service.get_daily_revenue(start_date="2024-01-01", end_date="2024-03-11")

        assert list(result.value) == ["2024-01-10", "2024-03-02", "2024-03-11"]
        assert result.value["2024-01-10"] == (Decimal("500"), 1)


class TestGatherOrCancel:
    """Concurrent sub-fetches are all-or-nothing."""

    @pytest.mark.asyncio
    async def test_results_by_name(self):
        async def value(v):
            await asyncio.sleep(0)
            return v

        assert await gather_or_cancel({"a": value(1), "b": value(2)}) == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_failure_cancels_siblings(self):
        """Test that the first failure cancels and awaits every outstanding job."""
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def failing():
            await asyncio.sleep(0)
            raise FetchError("boom", entity="patients", retrieved=12)

        with pytest.raises(FetchError):
            await gather_or_cancel({"slow": slow(), "failing": failing()})

        assert cancelled.is_set()


class TestLinkEntryDates:
    """Linking patients' entry dates onto their transactions."""

    def test_links_by_patient_id(self):
        transactions = [
            {"id": "T1", "patient_id": "P1", "amount": "10", "status": "COMPLETED", "created_at": "2024-03-15"},
            {"id": "T2", "patient_id": "P2", "amount": "10", "status": "COMPLETED", "created_at": "2024-03-15"},
            {"id": "T3", "amount": "10", "status": "COMPLETED", "created_at": "2024-03-15"},
        ]
        patients = [{"id": "P1", "date_of_entry": "2024-02-01"}, {"id": "P2", "date_of_entry": None}]

        records = link_entry_dates(transactions, patients)

        assert [r.linked_entry_date for r in records] == ["2024-02-01", None, None]

    def test_unreadable_row_raises(self):
        """Test that a row that is not a transaction is reported, not skipped."""
        with pytest.raises(ValidationError):
            link_entry_dates([{"id": "T1", "amount": "ten", "status": "COMPLETED"}], [])
