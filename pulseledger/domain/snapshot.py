"""Dashboard snapshot assembly.

Pure code: combines entity counts, revenue buckets and expense buckets into
one DashboardStats value. No I/O, no rounding. A missing input is an error,
never a zero.
"""

from decimal import Decimal
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from pulseledger.domain.aggregator import AggregationResult
from pulseledger.domain.ports import IncompleteSnapshotError
from pulseledger.domain.windows import TODAY

COUNT_KEYS = ("patients", "doctors", "beds", "appointments")


class DashboardCounts(BaseModel):
    """Exact entity counts for the dashboard header."""
    patients: int = Field(..., ge=0, description="Active patients")
    doctors: int = Field(..., ge=0, description="Active doctors")
    beds: int = Field(..., ge=0, description="Beds")
    appointments: int = Field(..., ge=0, description="Appointments in the reference period")


class WindowBounds(BaseModel):
    """Bounds of a window after intersection."""
    start_date: str
    end_date: str


class DashboardStats(BaseModel):
    """One complete, internally consistent dashboard snapshot.

    Attributes:
        reference_date: Day the standard windows were derived from
        counts: Entity counts
        revenue: Window label -> exact revenue sum
        expenses: Window label -> exact expense sum
        refunds: Window label -> absolute refund total
        transaction_counts: Window label -> number of revenue records
        windows: Window label -> bounds (None when intersected away)
        net_daily_value: today revenue - today expenses - today refunds
        undated_records: Records left out of every window for lack of a date
        sample_ids: Window label -> ids of the retained sample transactions
    """
    reference_date: str
    counts: DashboardCounts
    revenue: dict[str, Decimal]
    expenses: dict[str, Decimal]
    refunds: dict[str, Decimal]
    transaction_counts: dict[str, int]
    windows: dict[str, Optional[WindowBounds]]
    net_daily_value: Decimal
    undated_records: int = 0
    sample_ids: dict[str, list[str]] = Field(default_factory=dict)


def assemble(
    counts: Mapping[str, Optional[int]],
    window_sums: AggregationResult,
    expense_sums: AggregationResult,
    reference_date: str,
    today_label: str = TODAY,
) -> DashboardStats:
    """Build a DashboardStats snapshot.

    Parameters:
        counts: patients/doctors/beds/appointments counts
        window_sums: Revenue aggregation
        expense_sums: Expense aggregation over the same window plan
        reference_date: Day the windows were derived from
        today_label: Label of the window used for the net daily value

    Returns:
        DashboardStats

    Raises:
        IncompleteSnapshotError: If a count is missing or the revenue and
                                 expense buckets do not cover the same windows
    """
    missing_counts = [key for key in COUNT_KEYS if counts.get(key) is None]
    if missing_counts:
        raise IncompleteSnapshotError(f"Missing counts: {', '.join(missing_counts)}")

    revenue_labels = list(window_sums.buckets)
    if set(revenue_labels) != set(expense_sums.buckets):
        raise IncompleteSnapshotError(
            f"Revenue windows {sorted(window_sums.buckets)} do not match "
            f"expense windows {sorted(expense_sums.buckets)}"
        )
    if today_label not in window_sums.buckets:
        raise IncompleteSnapshotError(f"No '{today_label}' window to compute the net daily value")

    revenue = {label: window_sums.buckets[label].total for label in revenue_labels}
    expenses = {label: expense_sums.buckets[label].total for label in revenue_labels}
    refunds = {label: window_sums.buckets[label].refunds for label in revenue_labels}

    windows = {}
    for label in revenue_labels:
        window = window_sums.buckets[label].window
        windows[label] = (
            WindowBounds(start_date=window.start_date, end_date=window.end_date)
            if window is not None else None
        )

    net_daily_value = revenue[today_label] - expenses[today_label] - refunds[today_label]

    return DashboardStats(
        reference_date=reference_date,
        counts=DashboardCounts(**{key: counts[key] for key in COUNT_KEYS}),
        revenue=revenue,
        expenses=expenses,
        refunds=refunds,
        transaction_counts={label: window_sums.buckets[label].count for label in revenue_labels},
        windows=windows,
        net_daily_value=net_daily_value,
        undated_records=window_sums.undated + expense_sums.undated,
        sample_ids={
            label: [record.id for record in window_sums.buckets[label].samples]
            for label in revenue_labels
        },
    )
