"""PostgreSQL Record Store Adapter.

This adapter implements the RecordStorePort contract against the production
hospital database.

Security Impact:
    - Connection credentials are managed via configuration and never logged
    - Identifiers are composed with psycopg2.sql, values are always bound
    - SSL connections supported for secure network communication

Architecture:
    - Implements RecordStorePort (Hexagonal Architecture)
    - Threaded connection pool; every call borrows a connection and returns it
    - Each statement runs under SET LOCAL statement_timeout so one slow page
      cannot hold a pooled connection indefinitely
    - Driver error codes are classified into StoreErrorKind here and nowhere else
"""

import logging
import threading
from typing import Any, Callable, Optional, Sequence

import psycopg2
from psycopg2 import errorcodes, errors, pool, sql
from psycopg2.extras import RealDictCursor

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

DEFAULT_STATEMENT_TIMEOUT_MS = 10_000


def classify_postgres_error(error: Exception) -> StoreErrorKind:
    """Map a psycopg2 exception onto a StoreErrorKind."""
    if isinstance(error, StoreError):
        return error.kind
    pgcode = getattr(error, "pgcode", None)
    if isinstance(error, errors.UniqueViolation) or pgcode == errorcodes.UNIQUE_VIOLATION:
        return StoreErrorKind.DUPLICATE_KEY
    if isinstance(error, errors.UndefinedColumn) or pgcode == errorcodes.UNDEFINED_COLUMN:
        return StoreErrorKind.MISSING_COLUMN
    if isinstance(error, errors.QueryCanceled) or pgcode == errorcodes.QUERY_CANCELED:
        return StoreErrorKind.TIMEOUT
    if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return StoreErrorKind.CONNECTION
    return StoreErrorKind.UNKNOWN


def _where(filters: Sequence[QueryFilter]) -> tuple[sql.Composable, list]:
    clauses, params = [], []
    for f in filters:
        if f.is_null_check:
            clauses.append(sql.SQL("{} {}").format(sql.Identifier(f.column), sql.SQL(f.sql_operator)))
        else:
            clauses.append(sql.SQL("{} {} %s").format(sql.Identifier(f.column), sql.SQL(f.sql_operator)))
            params.append(f.value)
    if not clauses:
        return sql.SQL(""), params
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


class PostgreSQLAdapter(RecordStorePort):
    """PostgreSQL implementation of RecordStorePort.

    Parameters:
        store_config: StoreConfig from the configuration manager (preferred)
        connection_string: PostgreSQL connection string
        statement_timeout_ms: Per-statement timeout applied to every call

    Example Usage:
        ```python
        from pulseledger.infrastructure.settings import settings

        adapter = PostgreSQLAdapter(store_config=settings.store_config)
        result = adapter.count_records("beds", [QueryFilter.eq("hospital_id", tenant_id)])
        ```
    """

    store_type = "postgresql"

    def __init__(
        self,
        store_config: Optional[StoreConfig] = None,
        connection_string: Optional[str] = None,
        statement_timeout_ms: int = DEFAULT_STATEMENT_TIMEOUT_MS,
        pool_size: int = 5,
        max_overflow: int = 10
    ):
        """Initialize PostgreSQL adapter.

        Raises:
            StoreError: If neither a PostgreSQL config nor a connection string is given
        """
        self._connection_pool = None
        self._pool_lock = threading.Lock()
        self.statement_timeout_ms = statement_timeout_ms

        if store_config:
            if store_config.db_type != "postgresql":
                raise StoreError(
                    f"StoreConfig type '{store_config.db_type}' does not match PostgreSQL adapter",
                    operation="__init__"
                )
            if not store_config.connection_string and not all([store_config.host, store_config.database]):
                raise StoreError(
                    "PostgreSQL StoreConfig requires host and database",
                    operation="__init__"
                )
            self.connection_params = {"dsn": store_config.get_connection_string()}
            self.pool_size = store_config.pool_size
            self.max_overflow = store_config.max_overflow
        elif connection_string:
            self.connection_params = {"dsn": connection_string}
            self.pool_size = pool_size
            self.max_overflow = max_overflow
        else:
            raise StoreError(
                "PostgreSQL adapter requires either store_config or connection_string",
                operation="__init__"
            )

    def _get_connection_pool(self) -> pool.ThreadedConnectionPool:
        """Get or create the PostgreSQL connection pool (created lazily)."""
        with self._pool_lock:
            if self._connection_pool is None:
                try:
                    self._connection_pool = pool.ThreadedConnectionPool(
                        minconn=1,
                        maxconn=self.pool_size + self.max_overflow,
                        **self.connection_params
                    )
                    logger.info("Created PostgreSQL connection pool")
                except psycopg2.Error as e:
                    raise StoreError(
                        f"Failed to create PostgreSQL connection pool: {str(e)}",
                        operation="connect",
                        kind=StoreErrorKind.CONNECTION
                    ) from e
            return self._connection_pool

    def _get_connection(self):
        """Get a connection from the pool.

        Raises:
            StoreError: If connection cannot be obtained
        """
        try:
            return self._get_connection_pool().getconn()
        except pool.PoolError as e:
            raise StoreError(
                f"Failed to get connection from pool: {str(e)}",
                operation="get_connection",
                kind=StoreErrorKind.CONNECTION
            ) from e

    def _return_connection(self, conn) -> None:
        try:
            self._get_connection_pool().putconn(conn)
        except pool.PoolError as e:
            logger.warning(f"Error returning connection to pool: {str(e)}")

    def _run(self, operation: str, entity: str, work: Callable[[Any], Any]) -> Result:
        """Run work(cursor) in one short transaction and wrap the outcome in a Result."""
        conn = None
        try:
            conn = self._get_connection()
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute("SET LOCAL statement_timeout = %s", (self.statement_timeout_ms,))
                value = work(cursor)
            conn.commit()
            return Result.success_result(value)
        except (psycopg2.Error, StoreError) as e:
            if conn is not None:
                try:
                    conn.rollback()
                except psycopg2.Error as rollback_error:
                    logger.warning(f"Rollback after failed {operation} failed: {rollback_error}")
            kind = classify_postgres_error(e)
            logger.warning(f"{operation} on {entity} failed ({kind.value}): {str(e)}")
            return Result.failure_result(
                e,
                error_type=kind.value,
                error_details={"entity": entity, "operation": operation}
            )
        finally:
            if conn is not None:
                self._return_connection(conn)

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
        select_list = (
            sql.SQL(", ").join(sql.Identifier(validate_identifier(c)) for c in columns)
            if columns else sql.SQL("*")
        )
        where_sql, params = _where(filters)
        query = sql.SQL("SELECT {} FROM {}{} ORDER BY {} LIMIT %s OFFSET %s").format(
            select_list, sql.Identifier(table), where_sql, sql.Identifier("id")
        )

        def work(cursor):
            cursor.execute(query, params + [end - start + 1, start])
            return [dict(row) for row in cursor.fetchall()]

        return self._run("query_records", entity, work)

    def count_records(self, entity: str, filters: Sequence[QueryFilter]) -> Result[int]:
        """Count rows of an entity matching all filters."""
        table = table_for(entity)
        where_sql, params = _where(filters)
        query = sql.SQL("SELECT COUNT(*) AS total FROM {}{}").format(sql.Identifier(table), where_sql)

        def work(cursor):
            cursor.execute(query, params)
            row = cursor.fetchone()
            return int(row["total"]) if row else 0

        return self._run("count_records", entity, work)

    def insert_record(self, entity: str, row: dict) -> Result[str]:
        """Insert one row and return its id."""
        if "id" not in row:
            return Result.failure_result(
                ValueError("Row must carry an id"),
                error_type=StoreErrorKind.UNKNOWN.value
            )
        table = table_for(entity)
        names = [validate_identifier(name) for name in row]
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(name) for name in names),
            sql.SQL(", ").join(sql.Placeholder() for _ in names),
        )

        def work(cursor):
            cursor.execute(query, [row[name] for name in names])
            return str(row["id"])

        return self._run("insert_record", entity, work)

    def touch_last_activity(self, entity: str, record_id: str, timestamp: str) -> Result[bool]:
        """Move last_activity_at forward; never backwards."""
        table = table_for(entity)
        query = sql.SQL(
            "UPDATE {} SET last_activity_at = %s "
            "WHERE id = %s AND (last_activity_at IS NULL OR last_activity_at < %s)"
        ).format(sql.Identifier(table))

        def work(cursor):
            cursor.execute(query, (timestamp, record_id, timestamp))
            return cursor.rowcount > 0

        return self._run("touch_last_activity", entity, work)

    def close(self) -> None:
        """Close all pooled connections."""
        with self._pool_lock:
            if self._connection_pool is not None:
                self._connection_pool.closeall()
                self._connection_pool = None
                logger.info("Closed PostgreSQL connection pool")
