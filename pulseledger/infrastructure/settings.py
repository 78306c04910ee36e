"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Settings are loaded from secure configuration sources
    - Sensitive values are never logged
"""

import os
from typing import Optional

from pulseledger.infrastructure.config_manager import (
    ConfigManager,
    DashboardConfig,
    StoreConfig,
)

# Application metadata
APP_NAME = "Pulse-Ledger"
APP_VERSION = "1.0.0"


class Settings:
    """Application settings loaded from configuration manager and environment.

    When PL_CONFIG_FILE points at a JSON file, store and dashboard settings
    come from that file; otherwise from PL_* environment variables.
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._config_manager: Optional[ConfigManager] = None
        self._store_config: Optional[StoreConfig] = None
        self._dashboard_config: Optional[DashboardConfig] = None

        self.app_name = os.getenv("PL_APP_NAME", APP_NAME)
        self.config_file = os.getenv("PL_CONFIG_FILE")

        # Logging
        self.log_level = os.getenv("PL_LOG_LEVEL", "INFO")
        self.json_logs = os.getenv("PL_JSON_LOGS", "false").lower() == "true"

    @property
    def config_manager(self) -> ConfigManager:
        """Get configuration manager instance (file if configured, else environment)."""
        if self._config_manager is None:
            if self.config_file:
                self._config_manager = ConfigManager.from_file(self.config_file)
            else:
                self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def store_config(self) -> StoreConfig:
        """Get store configuration (loaded lazily on first access)."""
        if self._store_config is None:
            self._store_config = self.config_manager.get_store_config()
        return self._store_config

    @property
    def dashboard_config(self) -> DashboardConfig:
        """Get pipeline configuration (loaded lazily on first access)."""
        if self._dashboard_config is None:
            self._dashboard_config = self.config_manager.get_dashboard_config()
        return self._dashboard_config


# Global settings instance
settings = Settings()
