"""Single-pass window aggregation.

Each record is visited once: its canonical date is resolved once and then
tested against every window of the plan independently, so one record may
land in several overlapping windows. Sums are exact decimals; addition is
commutative, so the order in which pages or entities arrived never changes
a bucket.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, Optional, TypeVar

from pulseledger.domain.dates import canonical_date
from pulseledger.domain.exclusion import ExclusionFilter
from pulseledger.domain.records import ExpenseRecord, TimeWindow, TransactionRecord
from pulseledger.domain.windows import WindowPlan

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_CAP = 25
DEFAULT_REFUND_CATEGORY = "PROCEDURE"

R = TypeVar("R")


@dataclass
class WindowBucket:
    """Accumulated figures for one window.

    Attributes:
        window: The window after intersection (None if intersected away)
        total: Exact signed sum of amounts
        count: Number of records that landed in the window
        refunds: Absolute total of refund records (transactions only)
        samples: Up to sample_cap representative records for drill-down
    """
    window: Optional[TimeWindow]
    total: Decimal = Decimal("0")
    count: int = 0
    refunds: Decimal = Decimal("0")
    samples: list = field(default_factory=list)

    def add(self, amount: Decimal, record, sample_cap: int) -> None:
        self.total += amount
        self.count += 1
        if len(self.samples) < sample_cap:
            self.samples.append(record)


@dataclass
class AggregationResult:
    """Buckets of one pass plus the records that could not be dated."""
    buckets: dict[str, WindowBucket]
    undated: int = 0
    excluded: int = 0

    def totals(self) -> dict[str, Decimal]:
        return {label: bucket.total for label, bucket in self.buckets.items()}


class WindowAggregator:
    """Accumulates transactions and expenses into time-window buckets.

    Parameters:
        exclusion: Filter applied before any amount reaches a bucket
        sample_cap: Maximum number of sample records kept per bucket
        refund_category: Transaction type whose negative amounts are refunds
    """

    def __init__(
        self,
        exclusion: Optional[ExclusionFilter] = None,
        sample_cap: int = DEFAULT_SAMPLE_CAP,
        refund_category: str = DEFAULT_REFUND_CATEGORY,
    ):
        if sample_cap < 0:
            raise ValueError("sample_cap cannot be negative")
        self.exclusion = exclusion or ExclusionFilter()
        self.sample_cap = sample_cap
        self.refund_category = refund_category.strip().upper()

    def is_refund(self, record: TransactionRecord) -> bool:
        return record.amount < 0 and record.transaction_type == self.refund_category

    def _accumulate(
        self,
        records: Iterable[R],
        plan: WindowPlan,
        include: Callable[[R], bool],
        on_hit: Optional[Callable[[WindowBucket, R], None]] = None,
    ) -> AggregationResult:
        buckets = {label: WindowBucket(window=window) for label, window in plan.items()}
        active = [(buckets[label], window) for label, window in plan.items() if window is not None]
        result = AggregationResult(buckets=buckets)

        for record in records:
            if not include(record):
                continue
            day = canonical_date(record)
            if day is None:
                result.undated += 1
                continue
            for bucket, window in active:
                if window.start_date <= day <= window.end_date:
                    bucket.add(record.amount, record, self.sample_cap)
                    if on_hit is not None:
                        on_hit(bucket, record)

        if result.undated:
            logger.warning(f"{result.undated} records had no usable date and were left out of every window")
        return result

    def aggregate(self, records: Iterable[TransactionRecord], plan: WindowPlan) -> AggregationResult:
        """Aggregate COMPLETED, non-excluded transactions into the plan's windows.

        Parameters:
            records: Transactions (any order)
            plan: Window plan from pulseledger.domain.windows.plan_windows

        Returns:
            AggregationResult with one bucket per plan label
        """
        excluded = 0

        def include(record: TransactionRecord) -> bool:
            nonlocal excluded
            if not record.is_completed:
                return False
            if self.exclusion.is_excluded(record):
                excluded += 1
                return False
            return True

        def track_refund(bucket: WindowBucket, record: TransactionRecord) -> None:
            if self.is_refund(record):
                bucket.refunds += -record.amount

        result = self._accumulate(records, plan, include, track_refund)
        result.excluded = excluded
        return result

    def aggregate_expenses(self, expenses: Iterable[ExpenseRecord], plan: WindowPlan) -> AggregationResult:
        """Aggregate expenses (all but REJECTED) into the plan's windows."""
        return self._accumulate(expenses, plan, lambda expense: not expense.is_rejected)

    def daily_totals(
        self,
        records: Iterable[TransactionRecord],
        window: Optional[TimeWindow] = None,
    ) -> dict[str, tuple[Decimal, int]]:
        """Revenue per canonical date, optionally limited to one window.

        Returns:
            Mapping of YYYY-MM-DD to (total, count), sorted by date
        """
        days: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
        for record in records:
            if not record.is_completed or self.exclusion.is_excluded(record):
                continue
            day = canonical_date(record)
            if day is None or (window is not None and not window.contains(day)):
                continue
            days[day][0] += record.amount
            days[day][1] += 1
        return {day: (total, count) for day, (total, count) in sorted(days.items())}
