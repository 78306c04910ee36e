"""Paginated full-table retrieval.

Hosted record stores cap the number of rows a single request returns,
often silently. RecordFetcher keeps requesting consecutive inclusive ranges
until the store signals the end of the data, so callers always receive the
complete set for an entity regardless of the store's default cap.

Architecture:
    - Depends only on RecordStorePort
    - Each page call runs in a worker thread under its own timeout
    - Pages of one entity are strictly sequential; unrelated entities are
      fetched concurrently by the caller
"""

import asyncio
import logging
import warnings
from typing import Iterable, Optional, Sequence

from pulseledger.domain.ports import (
    CORE_COLUMNS,
    FetchError,
    QueryFilter,
    RecordStorePort,
    Result,
    StoreErrorKind,
    TruncationWarning,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5000
DEFAULT_PAGE_TIMEOUT = 10.0
SUSPICIOUS_PAGE_SIZES = (500, 1000)
TENANT_COLUMN = "hospital_id"


class RecordFetcher:
    """Fetches every row of an entity, one bounded page at a time.

    Paging rules:
        - A full page always continues; a data set that is an exact multiple
          of the page size therefore ends with one empty page.
        - The next request starts right after the last row received, so a
          page cut short by a store-side cap never causes rows to be skipped.
        - A short page whose length is one of the suspicious platform caps
          cannot be trusted as end-of-data: a TruncationWarning is emitted
          and one confirmatory request is made. Paging continues if it
          returns rows and stops if it is empty.
        - Any other short page ends the fetch.
        - Rows are kept once per id. A concurrent insert that sorts before the
          current offset makes the next range repeat a row already received;
          the repeat is dropped.

    Parameters:
        store: Record store adapter
        page_size: Rows requested per page
        page_timeout: Timeout of a single page request, in seconds
        suspicious_page_sizes: Page lengths that match typical row caps
    """

    def __init__(
        self,
        store: RecordStorePort,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT,
        suspicious_page_sizes: Iterable[int] = SUSPICIOUS_PAGE_SIZES,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        if page_timeout <= 0:
            raise ValueError("page_timeout must be positive")
        self.store = store
        self.page_size = page_size
        self.page_timeout = page_timeout
        self.suspicious_page_sizes = frozenset(suspicious_page_sizes)

    @staticmethod
    def _scoped(tenant_id: str, filters: Sequence[QueryFilter]) -> list[QueryFilter]:
        if not tenant_id:
            raise ValueError("tenant_id is required")
        return [QueryFilter.eq(TENANT_COLUMN, tenant_id), *filters]

    async def _call(self, entity: str, retrieved: int, func, *args) -> Result:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.page_timeout)
        except asyncio.TimeoutError:
            raise FetchError(
                f"Request for {entity} timed out after {self.page_timeout}s",
                entity=entity,
                retrieved=retrieved,
                kind=StoreErrorKind.TIMEOUT.value
            ) from None

    async def _fetch_page(
        self,
        entity: str,
        filters: Sequence[QueryFilter],
        start: int,
        end: int,
        columns: Optional[Sequence[str]],
        retrieved: int,
    ) -> tuple[list[dict], Optional[Sequence[str]]]:
        """Fetch one page; returns the rows and the column list to keep using."""
        result = await self._call(entity, retrieved, self.store.query_records, entity, filters, start, end, columns)

        core = CORE_COLUMNS.get(entity)
        if (
            result.is_failure()
            and result.error_type == StoreErrorKind.MISSING_COLUMN.value
            and columns is not None
            and core is not None
            and tuple(columns) != tuple(core)
        ):
            logger.warning(
                f"Missing column while fetching {entity}; retrying once with core columns {list(core)}",
                extra={"entity": entity, "retrieved": retrieved}
            )
            columns = core
            result = await self._call(entity, retrieved, self.store.query_records, entity, filters, start, end, columns)

        if result.is_failure():
            raise FetchError(
                f"Fetching {entity} rows [{start}, {end}] failed: {result.error}",
                entity=entity,
                retrieved=retrieved,
                kind=result.error_type
            )
        return result.value or [], columns

    async def fetch_all(
        self,
        entity: str,
        tenant_id: str,
        filters: Sequence[QueryFilter] = (),
        page_size: Optional[int] = None,
        columns: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        """Retrieve the complete set of rows of an entity for one tenant.

        Parameters:
            entity: Entity name (patients, transactions, expenses, ...)
            tenant_id: Tenant whose rows are fetched
            filters: Additional predicates combined with AND
            page_size: Override of the configured page size
            columns: Columns to request (None for all)

        Returns:
            Every matching row, in store order

        Raises:
            FetchError: If any page fails or times out; rows retrieved so far
                        are discarded and only their number is reported
        """
        size = page_size or self.page_size
        if size < 1:
            raise ValueError("page_size must be positive")
        scoped = self._scoped(tenant_id, filters)

        records: list[dict] = []
        seen: set = set()
        start = 0
        pages = 0
        while True:
            rows, columns = await self._fetch_page(entity, scoped, start, start + size - 1, columns, len(records))
            pages += 1
            # A row inserted ahead of the offset shifts the next range back by one.
            for row in rows:
                row_id = row.get("id")
                if row_id is not None:
                    if row_id in seen:
                        continue
                    seen.add(row_id)
                records.append(row)
            start += len(rows)

            if not rows:
                break
            if len(rows) >= size:
                continue
            if len(rows) in self.suspicious_page_sizes:
                message = (
                    f"Page {pages} of {entity} returned {len(rows)} rows, a typical store row cap; "
                    f"requesting the next range to confirm the end of data"
                )
                warnings.warn(message, TruncationWarning, stacklevel=2)
                logger.warning(message, extra={"entity": entity, "retrieved": len(records)})
                continue
            break

        logger.debug(f"Fetched {len(records)} {entity} rows in {pages} pages")
        return records

    async def count(
        self,
        entity: str,
        tenant_id: str,
        filters: Sequence[QueryFilter] = (),
    ) -> int:
        """Exact count of an entity's rows for one tenant.

        Raises:
            FetchError: If the count fails or times out
        """
        scoped = self._scoped(tenant_id, filters)
        result = await self._call(entity, 0, self.store.count_records, entity, scoped)
        if result.is_failure():
            raise FetchError(
                f"Counting {entity} failed: {result.error}",
                entity=entity,
                retrieved=0,
                kind=result.error_type
            )
        return result.value
