"""Storage adapters for Pulse-Ledger.

This module contains the record store adapters that implement the
RecordStorePort interface for the aggregation pipeline and the write path.
"""

import logging

from pulseledger.adapters.storage.duckdb_adapter import DuckDBAdapter
from pulseledger.adapters.storage.postgresql_adapter import PostgreSQLAdapter
from pulseledger.domain.ports import ConfigurationError, RecordStorePort
from pulseledger.infrastructure.config_manager import StoreConfig

logger = logging.getLogger(__name__)


def create_store_adapter(store_config: StoreConfig) -> RecordStorePort:
    """Create the adapter matching a store configuration.

    DuckDB stores get their schema created on first use; the production
    PostgreSQL schema is managed elsewhere and never touched.

    Raises:
        ConfigurationError: If the store type is unsupported or the DuckDB
                            schema cannot be created
    """
    if store_config.db_type == "duckdb":
        logger.debug(f"Creating DuckDB adapter with path: {store_config.db_path or ':memory:'}")
        adapter = DuckDBAdapter(store_config=store_config)
        schema = adapter.initialize_schema()
        if schema.is_failure():
            raise ConfigurationError(f"Could not initialize DuckDB schema: {schema.error}")
        return adapter
    if store_config.db_type == "postgresql":
        logger.debug(f"Creating PostgreSQL adapter with host: {store_config.host}")
        return PostgreSQLAdapter(store_config=store_config)
    raise ConfigurationError(f"Unsupported database type: {store_config.db_type}")


__all__ = ["DuckDBAdapter", "PostgreSQLAdapter", "create_store_adapter"]
