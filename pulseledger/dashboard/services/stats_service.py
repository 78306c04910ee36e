"""Dashboard statistics service.

This service computes one complete DashboardStats snapshot per request:
it fetches every entity the dashboard needs, concurrently, then runs the
pure aggregation pipeline (canonical dates, exclusion, windows, assembly)
over the complete data sets.

A snapshot is either complete or an explicit failure. A failed sub-fetch
never turns into a zero on the dashboard.
"""

import asyncio
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from pulseledger.dashboard.services.record_fetcher import RecordFetcher
from pulseledger.domain.aggregator import WindowAggregator
from pulseledger.domain.exclusion import ExclusionFilter
from pulseledger.domain.ports import (
    FetchError,
    IncompleteSnapshotError,
    QueryFilter,
    RecordStorePort,
    Result,
)
from pulseledger.domain.records import ExpenseRecord, TransactionRecord, TransactionStatus
from pulseledger.domain.snapshot import DashboardStats, assemble
from pulseledger.domain.windows import RANGE, THIS_MONTH, TODAY, WindowPlan, plan_windows
from pulseledger.infrastructure.config_manager import DashboardConfig

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = (
    "id", "patient_id", "amount", "status", "transaction_type",
    "transaction_date", "created_at", "doctor_name", "department",
)
PATIENT_COLUMNS = ("id", "created_at", "date_of_entry", "is_active")
EXPENSE_COLUMNS = ("id", "amount", "expense_category", "expense_date", "approval_status")

DateInput = Union[str, date, None]


async def gather_or_cancel(jobs: dict[str, Awaitable]) -> dict:
    """Run awaitables concurrently and return their results by name.

    If any job fails, or the caller is cancelled, every outstanding sibling
    is cancelled and awaited before the exception propagates.
    """
    tasks = {name: asyncio.ensure_future(job) for name, job in jobs.items()}
    try:
        await asyncio.gather(*tasks.values())
    except BaseException:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise
    return {name: task.result() for name, task in tasks.items()}


def link_entry_dates(transactions: list[dict], patients: list[dict]) -> list[TransactionRecord]:
    """Attach each patient's date_of_entry to that patient's transactions.

    Raises:
        pydantic.ValidationError: If a row cannot be read as a transaction
    """
    entry_dates = {
        str(patient["id"]): patient.get("date_of_entry")
        for patient in patients
        if patient.get("date_of_entry")
    }
    records = []
    for row in transactions:
        patient_id = row.get("patient_id")
        linked = entry_dates.get(str(patient_id)) if patient_id is not None else None
        records.append(TransactionRecord.model_validate({**row, "linked_entry_date": linked}))
    return records


class DashboardStatsService:
    """Computes dashboard snapshots for one tenant.

    Parameters:
        store: Record store adapter
        config: Pipeline configuration (tenant, paging, exclusion rules)
        fetcher: Optional pre-built fetcher (defaults to one built from config)
        clock: Returns the caller's current calendar date
    """

    def __init__(
        self,
        store: RecordStorePort,
        config: DashboardConfig,
        fetcher: Optional[RecordFetcher] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.config = config
        self.fetcher = fetcher or RecordFetcher(
            store,
            page_size=config.page_size,
            page_timeout=config.page_timeout_seconds,
            suspicious_page_sizes=config.suspicious_page_sizes,
        )
        self.aggregator = WindowAggregator(
            exclusion=ExclusionFilter(config.exclusion_rules),
            sample_cap=config.sample_cap,
            refund_category=config.refund_category,
        )
        self.clock = clock

    @property
    def tenant_id(self) -> str:
        return self.config.tenant_id

    def _appointment_filters(self, plan: WindowPlan) -> list[QueryFilter]:
        # Appointments of the reference day, or of the whole requested range.
        window = plan.get(RANGE) or plan[TODAY]
        day_after = (date.fromisoformat(window.end_date) + timedelta(days=1)).isoformat()
        return [
            QueryFilter.gte("appointment_date", window.start_date),
            QueryFilter.lt("appointment_date", day_after),
        ]

    def _transaction_jobs(self) -> dict[str, Awaitable]:
        return {
            "patients": self.fetcher.fetch_all("patients", self.tenant_id, columns=PATIENT_COLUMNS),
            "transactions": self.fetcher.fetch_all(
                "transactions",
                self.tenant_id,
                [QueryFilter.eq("status", TransactionStatus.COMPLETED.value)],
                columns=TRANSACTION_COLUMNS,
            ),
        }

    @staticmethod
    def _fetch_failure(error: FetchError) -> Result:
        logger.error(
            f"Dashboard refresh aborted: fetching {error.entity} failed after "
            f"{error.retrieved} rows: {str(error)}",
            extra={"entity": error.entity, "retrieved": error.retrieved}
        )
        return Result.failure_result(
            error,
            error_type="FetchError",
            error_details={"entity": error.entity, "retrieved": error.retrieved, "kind": error.kind}
        )

    async def get_dashboard_stats(
        self,
        start_date: DateInput = None,
        end_date: DateInput = None,
        today: DateInput = None,
    ) -> Result[DashboardStats]:
        """Compute a dashboard snapshot.

        Without a range the windows are Today / ThisWeek / ThisMonth relative
        to the caller's current date. With start_date and end_date every
        window is intersected with the inclusive range, the range end becomes
        the reference day and a "range" window is added.

        Parameters:
            start_date: First day of an optional range (inclusive)
            end_date: Last day of an optional range (inclusive)
            today: Override of the caller's current date

        Returns:
            Result[DashboardStats]: Complete snapshot, or a failure with
            error_type ValidationError, FetchError, RecordValidationError or
            IncompleteSnapshotError

        Raises:
            asyncio.CancelledError: If the caller is cancelled; outstanding
                                    fetches are cancelled with it
        """
        try:
            plan = plan_windows(today or self.clock(), start_date, end_date)
        except ValueError as e:
            return Result.failure_result(e, error_type="ValidationError")

        reference_date = plan[RANGE].end_date if RANGE in plan else plan[TODAY].start_date

        jobs = self._transaction_jobs()
        jobs["expenses"] = self.fetcher.fetch_all("expenses", self.tenant_id, columns=EXPENSE_COLUMNS)
        jobs["count:patients"] = self.fetcher.count("patients", self.tenant_id, [QueryFilter.eq("is_active", True)])
        jobs["count:doctors"] = self.fetcher.count("doctors", self.tenant_id, [QueryFilter.eq("is_active", True)])
        jobs["count:beds"] = self.fetcher.count("beds", self.tenant_id)
        jobs["count:appointments"] = self.fetcher.count(
            "appointments", self.tenant_id, self._appointment_filters(plan)
        )

        try:
            fetched = await gather_or_cancel(jobs)
        except FetchError as e:
            return self._fetch_failure(e)

        try:
            transactions = link_entry_dates(fetched["transactions"], fetched["patients"])
            expenses = [ExpenseRecord.model_validate(row) for row in fetched["expenses"]]
        except PydanticValidationError as e:
            logger.error(f"Dashboard refresh aborted: unreadable record: {str(e)}")
            return Result.failure_result(e, error_type="RecordValidationError")

        revenue = self.aggregator.aggregate(transactions, plan)
        expense_sums = self.aggregator.aggregate_expenses(expenses, plan)
        counts = {
            name.split(":", 1)[1]: value
            for name, value in fetched.items()
            if name.startswith("count:")
        }

        try:
            stats = assemble(counts, revenue, expense_sums, reference_date)
        except IncompleteSnapshotError as e:
            logger.error(f"Dashboard snapshot incomplete: {str(e)}")
            return Result.failure_result(e, error_type="IncompleteSnapshotError")

        logger.info(
            f"Dashboard snapshot for {reference_date}: {len(transactions)} transactions, "
            f"{len(expenses)} expenses, {revenue.excluded} excluded, "
            f"{stats.undated_records} undated"
        )
        return Result.success_result(stats)

    async def get_daily_revenue(
        self,
        start_date: DateInput = None,
        end_date: DateInput = None,
        today: DateInput = None,
    ) -> Result[dict[str, tuple[Decimal, int]]]:
        """Revenue per canonical date over the requested range (or this month).

        Returns:
            Result mapping YYYY-MM-DD to (total, count), sorted by date
        """
        try:
            plan = plan_windows(today or self.clock(), start_date, end_date)
        except ValueError as e:
            return Result.failure_result(e, error_type="ValidationError")

        try:
            fetched = await gather_or_cancel(self._transaction_jobs())
        except FetchError as e:
            return self._fetch_failure(e)

        try:
            transactions = link_entry_dates(fetched["transactions"], fetched["patients"])
        except PydanticValidationError as e:
            return Result.failure_result(e, error_type="RecordValidationError")

        window = plan.get(RANGE) or plan[THIS_MONTH]
        return Result.success_result(self.aggregator.daily_totals(transactions, window))
