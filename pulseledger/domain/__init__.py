"""Domain layer for Pulse-Ledger.

This module contains the record schemas and the pure aggregation pipeline:
canonical dates, exclusion rules, time windows, window aggregation and
snapshot assembly. Nothing here performs I/O.
"""

from .records import (
    TransactionRecord,
    PatientRecord,
    ExpenseRecord,
    TimeWindow,
)
from .snapshot import DashboardStats, DashboardCounts

__all__ = [
    "TransactionRecord",
    "PatientRecord",
    "ExpenseRecord",
    "TimeWindow",
    "DashboardStats",
    "DashboardCounts",
]
