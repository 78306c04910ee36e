"""DuckDB Record Store Adapter.

This adapter implements the RecordStorePort contract on top of DuckDB, an
in-process database. It backs local development, offline analysis of an
exported copy of the hospital tables, and the test suite.

Architecture:
    - Implements RecordStorePort (Hexagonal Architecture)
    - Isolated from the dashboard services - only depends on ports
    - One cursor per call, so concurrent fetches from worker threads never
      share a cursor
    - Optional row_cap reproduces the per-request row limit of hosted stores
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

import duckdb

from pulseledger.domain.ports import (
    QueryFilter,
    RecordStorePort,
    Result,
    StoreError,
    StoreErrorKind,
    table_for,
    validate_identifier,
)
from pulseledger.infrastructure.config_manager import StoreConfig

logger = logging.getLogger(__name__)

# Date and timestamp columns are VARCHAR: the hospital tables mix date-only
# values with datetime-with-offset values and are mirrored as-is.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS patients (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        first_name VARCHAR,
        last_name VARCHAR,
        created_at VARCHAR NOT NULL,
        date_of_entry VARCHAR,
        is_active BOOLEAN DEFAULT TRUE,
        last_activity_at VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS patient_transactions (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        patient_id VARCHAR,
        amount DECIMAL(14, 2) NOT NULL,
        status VARCHAR NOT NULL,
        transaction_type VARCHAR,
        transaction_date VARCHAR,
        created_at VARCHAR NOT NULL,
        doctor_name VARCHAR,
        department VARCHAR,
        payment_mode VARCHAR,
        description VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_expenses (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        amount DECIMAL(14, 2) NOT NULL,
        expense_category VARCHAR,
        expense_date VARCHAR NOT NULL,
        approval_status VARCHAR,
        description VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS doctors (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        name VARCHAR NOT NULL,
        department VARCHAR,
        is_active BOOLEAN DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS beds (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        bed_number VARCHAR,
        status VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS future_appointments (
        id VARCHAR PRIMARY KEY,
        hospital_id VARCHAR NOT NULL,
        patient_id VARCHAR,
        doctor_id VARCHAR,
        appointment_date VARCHAR NOT NULL,
        status VARCHAR
    )
    """,
)


def classify_duckdb_error(error: Exception) -> StoreErrorKind:
    """Map a DuckDB exception onto a StoreErrorKind."""
    if isinstance(error, duckdb.ConstraintException):
        if "duplicate key" in str(error).lower():
            return StoreErrorKind.DUPLICATE_KEY
        return StoreErrorKind.UNKNOWN
    if isinstance(error, duckdb.BinderException) and "column" in str(error).lower():
        return StoreErrorKind.MISSING_COLUMN
    if isinstance(error, duckdb.InterruptException):
        return StoreErrorKind.TIMEOUT
    if isinstance(error, (duckdb.ConnectionException, duckdb.IOException)):
        return StoreErrorKind.CONNECTION
    return StoreErrorKind.UNKNOWN


def _where(filters: Sequence[QueryFilter]) -> tuple[str, list]:
    clauses, params = [], []
    for f in filters:
        if f.is_null_check:
            clauses.append(f'"{f.column}" {f.sql_operator}')
        else:
            clauses.append(f'"{f.column}" {f.sql_operator} ?')
            params.append(f.value)
    return (" WHERE " + " AND ".join(clauses)) if clauses else "", params


class DuckDBAdapter(RecordStorePort):
    """DuckDB implementation of RecordStorePort.

    Parameters:
        store_config: StoreConfig from the configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)
        row_cap: Maximum rows returned per request, regardless of the range
                 asked for (None for no cap)

    Example Usage:
        ```python
        adapter = DuckDBAdapter(db_path=":memory:")
        adapter.initialize_schema()
        adapter.insert_record("patients", {"id": "P1", "hospital_id": "H1", "created_at": "2024-01-01"})
        result = adapter.query_records("patients", [QueryFilter.eq("hospital_id", "H1")], 0, 999)
        ```
    """

    store_type = "duckdb"

    def __init__(
        self,
        store_config: Optional[StoreConfig] = None,
        db_path: Optional[str] = None,
        row_cap: Optional[int] = None
    ):
        """Initialize DuckDB adapter.

        Raises:
            StoreError: If the config is not a DuckDB config or the database
                        directory does not exist
        """
        if store_config:
            if store_config.db_type != "duckdb":
                raise StoreError(
                    f"StoreConfig type '{store_config.db_type}' does not match DuckDB adapter",
                    operation="__init__"
                )
            self.db_path = store_config.db_path or ":memory:"
        else:
            self.db_path = db_path or ":memory:"

        if row_cap is not None and row_cap < 1:
            raise StoreError("row_cap must be positive", operation="__init__")
        self.row_cap = row_cap
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._initialized = False

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise StoreError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the shared DuckDB connection (created lazily)."""
        with self._lock:
            if self._connection is None:
                self._connection = duckdb.connect(self.db_path)
                logger.debug(f"Opened DuckDB database: {self.db_path}")
            return self._connection

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        connection = self._get_connection()
        with self._lock:
            return connection.cursor()

    def initialize_schema(self) -> Result[None]:
        """Create the hospital tables if they do not exist."""
        try:
            cursor = self._cursor()
            try:
                for statement in SCHEMA_STATEMENTS:
                    cursor.execute(statement)
            finally:
                cursor.close()
            self._initialized = True
            logger.info("DuckDB schema initialized")
            return Result.success_result(None)
        except duckdb.Error as e:
            logger.error(f"Failed to initialize DuckDB schema: {str(e)}", exc_info=True)
            return Result.failure_result(e, error_type=classify_duckdb_error(e).value)

    def query_records(
        self,
        entity: str,
        filters: Sequence[QueryFilter],
        start: int,
        end: int,
        columns: Optional[Sequence[str]] = None
    ) -> Result[list[dict]]:
        """Read rows [start, end] (inclusive) of an entity, ordered by id."""
        if start < 0 or end < start:
            return Result.failure_result(
                ValueError(f"Invalid range [{start}, {end}]"),
                error_type=StoreErrorKind.UNKNOWN.value
            )
        table = table_for(entity)
        select_list = ", ".join(f'"{validate_identifier(c)}"' for c in columns) if columns else "*"
        where_sql, params = _where(filters)
        limit = end - start + 1
        if self.row_cap is not None:
            limit = min(limit, self.row_cap)

        query = (
            f'SELECT {select_list} FROM "{table}"{where_sql} '
            f'ORDER BY "id" LIMIT {int(limit)} OFFSET {int(start)}'
        )
        try:
            cursor = self._cursor()
            try:
                cursor.execute(query, params)
                names = [column[0] for column in cursor.description]
                rows = [dict(zip(names, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()
            return Result.success_result(rows)
        except duckdb.Error as e:
            kind = classify_duckdb_error(e)
            logger.warning(f"Query on {table} failed ({kind.value}): {str(e)}")
            return Result.failure_result(
                e,
                error_type=kind.value,
                error_details={"entity": entity, "operation": "query_records"}
            )

    def count_records(self, entity: str, filters: Sequence[QueryFilter]) -> Result[int]:
        """Count rows of an entity matching all filters."""
        table = table_for(entity)
        where_sql, params = _where(filters)
        try:
            cursor = self._cursor()
            try:
                cursor.execute(f'SELECT COUNT(*) FROM "{table}"{where_sql}', params)
                row = cursor.fetchone()
            finally:
                cursor.close()
            return Result.success_result(int(row[0]) if row else 0)
        except duckdb.Error as e:
            kind = classify_duckdb_error(e)
            logger.warning(f"Count on {table} failed ({kind.value}): {str(e)}")
            return Result.failure_result(
                e,
                error_type=kind.value,
                error_details={"entity": entity, "operation": "count_records"}
            )

    def insert_record(self, entity: str, row: dict) -> Result[str]:
        """Insert one row and return its id."""
        if "id" not in row:
            return Result.failure_result(
                ValueError("Row must carry an id"),
                error_type=StoreErrorKind.UNKNOWN.value
            )
        table = table_for(entity)
        names = [validate_identifier(name) for name in row]
        column_sql = ", ".join(f'"{name}"' for name in names)
        placeholders = ", ".join("?" for _ in names)
        try:
            cursor = self._cursor()
            try:
                cursor.execute(
                    f'INSERT INTO "{table}" ({column_sql}) VALUES ({placeholders})',
                    [row[name] for name in names]
                )
            finally:
                cursor.close()
            return Result.success_result(str(row["id"]))
        except duckdb.Error as e:
            kind = classify_duckdb_error(e)
            logger.warning(f"Insert into {table} failed ({kind.value}): {str(e)}")
            return Result.failure_result(
                e,
                error_type=kind.value,
                error_details={"entity": entity, "operation": "insert_record"}
            )

    def touch_last_activity(self, entity: str, record_id: str, timestamp: str) -> Result[bool]:
        """Move last_activity_at forward; never backwards."""
        table = table_for(entity)
        try:
            cursor = self._cursor()
            try:
                cursor.execute(
                    f'UPDATE "{table}" SET "last_activity_at" = ? '
                    f'WHERE "id" = ? AND ("last_activity_at" IS NULL OR "last_activity_at" < ?) '
                    f'RETURNING "id"',
                    [timestamp, record_id, timestamp]
                )
                changed = len(cursor.fetchall()) > 0
            finally:
                cursor.close()
            return Result.success_result(changed)
        except duckdb.Error as e:
            kind = classify_duckdb_error(e)
            logger.warning(f"Activity update on {table} failed ({kind.value}): {str(e)}")
            return Result.failure_result(
                e,
                error_type=kind.value,
                error_details={"entity": entity, "operation": "touch_last_activity"}
            )

    def close(self) -> None:
        """Close the DuckDB connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.debug("Closed DuckDB connection")
