"""Canonical date resolution.

A transaction row can carry up to three competing dates: the linked
patient's (possibly backdated) entry date, its own explicit transaction
date, and its creation timestamp. This module resolves exactly one calendar
date per record.

Every candidate is reduced to its date part by splitting off the time and
timezone suffix. Values are never parsed into timezone-aware instants: the
store mixes date-only values with datetime-with-offset values, and
converting those to a common zone moves rows across midnight. Canonical
dates are plain YYYY-MM-DD strings and are compared as strings.
"""

import logging
from datetime import date, datetime
from typing import Optional, Union

from pulseledger.domain.records import DATE_PATTERN, ExpenseRecord, PatientRecord, TransactionRecord

logger = logging.getLogger(__name__)

DateCandidate = Union[str, date, datetime, None]


def normalize_date_string(value: DateCandidate) -> Optional[str]:
    """Reduce a date or timestamp to its YYYY-MM-DD part.

    "2024-03-15T10:00:00Z", "2024-03-15 10:00:00+05:30" and "2024-03-15" all
    normalize to "2024-03-15". Returns None for empty or malformed input.
    """
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        value = value.isoformat()
    candidate = value.strip()
    if not candidate:
        return None
    candidate = candidate.split("T", 1)[0].split(" ", 1)[0]
    if not DATE_PATTERN.match(candidate):
        logger.debug(f"Ignoring malformed date candidate: {value!r}")
        return None
    return candidate


def first_canonical(*candidates: DateCandidate) -> Optional[str]:
    """Return the first candidate that normalizes to a calendar date."""
    for candidate in candidates:
        normalized = normalize_date_string(candidate)
        if normalized is not None:
            return normalized
    return None


def canonical_date(record: Union[TransactionRecord, PatientRecord, ExpenseRecord, str]) -> Optional[str]:
    """Resolve the canonical calendar date of a record.

    Precedence for transactions (first usable value wins):
        1. linked_entry_date - the patient's backdated entry date
        2. transaction_date - the transaction's own explicit date
        3. created_at - creation timestamp, truncated to the date

    Patients resolve date_of_entry before created_at; expenses use their
    expense_date. A plain string is normalized directly, which makes the
    function idempotent on canonical dates.

    Returns:
        The YYYY-MM-DD string, or None when no candidate is usable
    """
    if isinstance(record, str):
        return normalize_date_string(record)
    if isinstance(record, TransactionRecord):
        return first_canonical(
            record.linked_entry_date,
            record.transaction_date,
            record.created_at,
        )
    if isinstance(record, PatientRecord):
        return first_canonical(record.date_of_entry, record.created_at)
    if isinstance(record, ExpenseRecord):
        return normalize_date_string(record.expense_date)
    raise TypeError(f"Cannot resolve a canonical date for {type(record).__name__}")
