"""Dependency injection for dashboard API.

This module provides dependency injection functions for FastAPI, following
Hexagonal Architecture principles: routes receive services, services receive
the RecordStorePort, and only this module knows which adapter is configured.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from pulseledger.adapters.storage import create_store_adapter
from pulseledger.dashboard.services.stats_service import DashboardStatsService
from pulseledger.dashboard.services.transaction_recorder import TransactionRecorder
from pulseledger.domain.ports import RecordStorePort
from pulseledger.infrastructure.config_manager import DashboardConfig
from pulseledger.infrastructure.settings import settings


@lru_cache()
def get_store_adapter() -> RecordStorePort:
    """Get record store adapter instance (cached).

    The adapter (DuckDB or PostgreSQL) is chosen from configuration and
    cached so connections and pools are reused across requests.

    Returns:
        RecordStorePort: Configured store adapter instance

    Raises:
        ConfigurationError: If the store configuration is invalid

    Security Impact:
        - Uses the configuration manager; credentials never reach the logs
    """
    return create_store_adapter(settings.store_config)


def get_dashboard_config() -> DashboardConfig:
    """Get the validated pipeline configuration."""
    return settings.dashboard_config


StoreDep = Annotated[RecordStorePort, Depends(get_store_adapter)]
DashboardConfigDep = Annotated[DashboardConfig, Depends(get_dashboard_config)]


def get_stats_service(store: StoreDep, config: DashboardConfigDep) -> DashboardStatsService:
    return DashboardStatsService(store, config)


def get_transaction_recorder(store: StoreDep, config: DashboardConfigDep) -> TransactionRecorder:
    return TransactionRecorder(store, config.tenant_id)


StatsServiceDep = Annotated[DashboardStatsService, Depends(get_stats_service)]
RecorderDep = Annotated[TransactionRecorder, Depends(get_transaction_recorder)]
