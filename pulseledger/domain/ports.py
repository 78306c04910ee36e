"""Domain Ports - Abstract Contracts for Record Stores.

This module defines the Port interface (abstract contract) that storage adapters
must implement, together with the Result type and the exception taxonomy shared
by the whole aggregation pipeline.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (DuckDB, PostgreSQL) implement RecordStorePort
    - The dashboard services only ever talk to the port, never to a driver
    - Store failures are classified once, in the adapter, into StoreErrorKind
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, Sequence, TypeVar, Union

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Storage adapters and dashboard services return Result objects so callers
    can decide how a failure propagates (the fetcher turns it into FetchError,
    API routes turn it into an HTTP error).

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (FetchError, DUPLICATE_KEY, etc.)
        error_details: Additional error context (entity, retrieved, etc.)

    Example:
        ```python
        result = store.count_records("beds", filters)
        if result.is_success():
            total = result.value
        else:
            logger.error(result.error, extra={"details": result.error_details})
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "FetchError", "MISSING_COLUMN")
            error_details: Additional context (entity, operation, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Error Taxonomy
# ============================================================================

class StoreErrorKind(str, Enum):
    """Classification of backing-store failures.

    Adapters map driver-specific error codes onto these kinds so that
    recovery decisions are made on a typed value instead of on raw codes.
    """
    DUPLICATE_KEY = "DUPLICATE_KEY"
    MISSING_COLUMN = "MISSING_COLUMN"
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    UNKNOWN = "UNKNOWN"


class PulseLedgerError(Exception):
    """Base exception for all aggregation-pipeline errors."""
    pass


class StoreError(PulseLedgerError):
    """Raised by storage adapters when the backing store cannot be used.

    Attributes:
        operation: The adapter operation that failed
        kind: Classified failure kind
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        kind: StoreErrorKind = StoreErrorKind.UNKNOWN
    ):
        super().__init__(message)
        self.operation = operation
        self.kind = kind


class FetchError(PulseLedgerError):
    """Raised when a full-table fetch (or a count) cannot be completed.

    A FetchError is fatal for the refresh that triggered it. The records
    retrieved before the failure are NOT attached: callers must discard
    partial results, so only their number is kept for diagnostics.

    Attributes:
        entity: Entity whose fetch failed
        retrieved: Number of rows retrieved before the failure
        kind: Classified store failure kind (if known)
    """

    def __init__(
        self,
        message: str,
        entity: str,
        retrieved: int = 0,
        kind: Optional[str] = None
    ):
        super().__init__(message)
        self.entity = entity
        self.retrieved = retrieved
        self.kind = kind


class TruncationWarning(UserWarning):
    """Emitted when a short page matches a typical platform row cap.

    Such a page may be the real end of the data or a silently truncated
    response; the fetcher flags it and confirms with one more request.
    """
    pass


class ConfigurationError(PulseLedgerError):
    """Raised at configuration load time for malformed settings.

    Covers exclusion rules with an empty side, inverted or malformed window
    boundaries and invalid fetch settings.
    """
    pass


class IncompleteSnapshotError(PulseLedgerError):
    """Raised by the assembler when one of its inputs is missing.

    The assembler never fills a missing input with zero; it refuses to build
    the snapshot instead.
    """
    pass


# ============================================================================
# Query Filters
# ============================================================================

_IDENTIFIER_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")

FILTER_OPERATORS = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def validate_identifier(name: str) -> str:
    """Validate a table or column name before it is interpolated into SQL.

    Parameters:
        name: Identifier to validate

    Returns:
        The identifier unchanged

    Raises:
        ValueError: If the identifier is not a plain lowercase SQL name
    """
    if not isinstance(name, str) or not _IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


@dataclass(frozen=True)
class QueryFilter:
    """A single comparison predicate understood by every store adapter.

    Attributes:
        column: Column name (validated identifier)
        op: One of eq, neq, gt, gte, lt, lte
        value: Comparison value; None is only allowed with eq/neq and maps
               to IS NULL / IS NOT NULL
    """
    column: str
    op: str
    value: Any

    def __post_init__(self):
        validate_identifier(self.column)
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")
        if self.value is None and self.op not in ("eq", "neq"):
            raise ValueError(f"Operator {self.op} cannot compare against NULL")

    @property
    def is_null_check(self) -> bool:
        return self.value is None

    @property
    def sql_operator(self) -> str:
        """SQL operator text; comparisons against None become IS [NOT] NULL."""
        if self.value is None:
            return "IS NULL" if self.op == "eq" else "IS NOT NULL"
        return FILTER_OPERATORS[self.op]

    @classmethod
    def eq(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "eq", value)

    @classmethod
    def neq(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "neq", value)

    @classmethod
    def gt(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "gt", value)

    @classmethod
    def gte(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "gte", value)

    @classmethod
    def lte(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "lte", value)

    @classmethod
    def lt(cls, column: str, value: Any) -> 'QueryFilter':
        return cls(column, "lt", value)


# ============================================================================
# Entities
# ============================================================================

ENTITY_TABLES = {
    "patients": "patients",
    "transactions": "patient_transactions",
    "expenses": "daily_expenses",
    "doctors": "doctors",
    "beds": "beds",
    "appointments": "future_appointments",
}

# Narrower column sets used for the single missing-column retry. They keep
# every column that decides dating or exclusion; only enrichment is dropped.
CORE_COLUMNS = {
    "patients": ("id", "created_at", "date_of_entry", "is_active"),
    "transactions": (
        "id", "patient_id", "amount", "status", "transaction_date",
        "created_at", "doctor_name", "department",
    ),
    "expenses": ("id", "amount", "expense_category", "expense_date"),
    "doctors": ("id",),
    "beds": ("id",),
    "appointments": ("id", "appointment_date"),
}


def table_for(entity: str) -> str:
    """Return the table backing an entity.

    Raises:
        ValueError: If the entity is unknown
    """
    try:
        return ENTITY_TABLES[entity]
    except KeyError:
        raise ValueError(f"Unknown entity: {entity}") from None


# ============================================================================
# Record Store Port
# ============================================================================

class RecordStorePort(ABC):
    """Abstract contract for the backing record store.

    Key Principles:
        - Range-bounded reads: query_records never returns more rows than
          end - start + 1, and may return fewer if the store applies its
          own row cap
        - Stable order: rows are returned ordered by id so successive ranges
          neither overlap nor skip rows
        - Failures are returned as Result.failure_result with error_type set
          to a StoreErrorKind value

    Example Usage:
        ```python
        result = store.query_records(
            "transactions",
            [QueryFilter.eq("hospital_id", tenant_id)],
            start=0,
            end=999,
        )
        if result.is_success():
            rows = result.value
        ```
    """

    store_type = "unknown"

    @abstractmethod
    def query_records(
        self,
        entity: str,
        filters: Sequence[QueryFilter],
        start: int,
        end: int,
        columns: Optional[Sequence[str]] = None
    ) -> Result[list[dict]]:
        """Read rows [start, end] (inclusive) of an entity.

        Parameters:
            entity: Entity name (see ENTITY_TABLES)
            filters: Predicates combined with AND
            start: Zero-based index of the first row
            end: Zero-based index of the last row (inclusive)
            columns: Columns to return (None for all)

        Returns:
            Result[list[dict]]: Rows as dictionaries or classified failure
        """
        pass

    @abstractmethod
    def count_records(
        self,
        entity: str,
        filters: Sequence[QueryFilter]
    ) -> Result[int]:
        """Count rows of an entity without retrieving them."""
        pass

    @abstractmethod
    def insert_record(self, entity: str, row: dict) -> Result[str]:
        """Insert one row and return its id.

        A duplicate primary key must be reported with error_type
        DUPLICATE_KEY, an unknown column with MISSING_COLUMN.
        """
        pass

    @abstractmethod
    def touch_last_activity(
        self,
        entity: str,
        record_id: str,
        timestamp: str
    ) -> Result[bool]:
        """Move a row's last_activity_at forward to timestamp.

        The update never moves the timestamp backwards, which makes repeating
        it harmless. Returns True if the row changed.
        """
        pass

    def close(self) -> None:
        """Release store resources (optional)."""
        return None
