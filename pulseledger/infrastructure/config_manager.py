"""Configuration Manager for the record store and the dashboard pipeline.

This module loads the record-store connection settings and the aggregation
settings (tenant scope, paging, exclusion rules) from environment variables
or a JSON file, and validates them with Pydantic before anything runs.

Security Impact:
    - Credentials are never logged or exposed in error messages
    - Passwords and connection strings are held as SecretStr

Architecture:
    - Infrastructure layer, isolated from the domain
    - Every validation failure surfaces as ConfigurationError at load time,
      never per request
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, quote_plus, unquote, urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from pulseledger.domain.exclusion import ExclusionRule
from pulseledger.domain.ports import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PL_"


class StoreConfig(BaseModel):
    """Record store connection settings.

    Security Impact:
        - Passwords are stored as SecretStr (never logged)
        - PostgreSQL connection strings are parsed into fields and vice versa

    Parameters:
        db_type: duckdb or postgresql
        db_path: Path to the DuckDB file (':memory:' for in-memory)
        host: Database host (PostgreSQL)
        port: Database port (PostgreSQL)
        database: Database name
        username: Database username
        password: Database password (SecretStr - never logged)
        connection_string: Full connection string (SecretStr - never logged)
        ssl_mode: SSL mode for secure connections
        pool_size: Connection pool size
        max_overflow: Maximum connection pool overflow
    """

    db_type: str = Field(..., description="Store type (duckdb, postgresql)")
    db_path: Optional[str] = Field(None, description="Path to database file (for DuckDB)")
    host: Optional[str] = Field(None, description="Database host")
    port: Optional[int] = Field(None, description="Database port")
    database: Optional[str] = Field(None, description="Database name")
    username: Optional[str] = Field(None, description="Database username")
    password: Optional[SecretStr] = Field(None, description="Database password (secret)")
    connection_string: Optional[SecretStr] = Field(None, description="Full connection string (secret)")
    ssl_mode: Optional[str] = Field(None, description="SSL mode (require, prefer, disable)")
    pool_size: int = Field(default=5, ge=1, description="Connection pool size")
    max_overflow: int = Field(default=10, ge=0, description="Maximum connection pool overflow")

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        """Validate store type."""
        supported_types = ["duckdb", "postgresql"]
        if v.lower() not in supported_types:
            raise ValueError(f"Unsupported database type: {v}. Supported: {supported_types}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the database directory exists (file may not exist yet)."""
        if v is None or v == ":memory:":
            return v
        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)

    @staticmethod
    def _parse_postgresql_connection_string(conn_str: str) -> Dict[str, Any]:
        """Parse a postgresql:// or postgres:// URL into its components."""
        parsed = urlparse(conn_str)
        if parsed.scheme not in ['postgresql', 'postgres']:
            raise ValueError(f"Unsupported connection string scheme: {parsed.scheme}")

        result = {
            'host': parsed.hostname,
            'port': parsed.port,
            'database': parsed.path.lstrip('/') if parsed.path else None,
            'username': unquote(parsed.username) if parsed.username else None,
            'password': unquote(parsed.password) if parsed.password else None,
        }
        query_params = parse_qs(parsed.query)
        if 'sslmode' in query_params:
            result['ssl_mode'] = query_params['sslmode'][0]
        return result

    @model_validator(mode='after')
    def sync_connection_string_and_fields(self) -> 'StoreConfig':
        """Keep the PostgreSQL connection string and the individual fields in sync.

        The connection string always takes precedence over individual fields.
        """
        if self.db_type != "postgresql":
            return self

        if self.connection_string:
            parsed = self._parse_postgresql_connection_string(self.connection_string.get_secret_value())
            if parsed.get('host'):
                self.host = parsed['host']
            if parsed.get('port'):
                self.port = parsed['port']
            if parsed.get('database'):
                self.database = parsed['database']
            if parsed.get('username'):
                self.username = parsed['username']
            if parsed.get('password'):
                self.password = SecretStr(parsed['password'])
            if parsed.get('ssl_mode'):
                self.ssl_mode = parsed['ssl_mode']
        elif all([self.host, self.database]):
            self.connection_string = SecretStr(self._build_postgresql_url())
        return self

    def _build_postgresql_url(self) -> str:
        password_part = ""
        if self.password:
            password_part = f":{quote_plus(self.password.get_secret_value())}"
        username_part = quote_plus(self.username) if self.username else ""
        ssl_part = f"?sslmode={self.ssl_mode}" if self.ssl_mode else ""
        return (
            f"postgresql://{username_part}{password_part}@{self.host}:{self.port or 5432}"
            f"/{self.database}{ssl_part}"
        )

    def get_connection_string(self) -> str:
        """Get connection string (or DuckDB path) for the store.

        Security Impact:
            - Password is retrieved from SecretStr but not logged
        """
        if self.connection_string:
            return self.connection_string.get_secret_value()
        if self.db_type == "duckdb":
            return self.db_path or ":memory:"
        if not all([self.host, self.database]):
            raise ValueError(f"{self.db_type} requires host and database")
        return self._build_postgresql_url()


class DashboardConfig(BaseModel):
    """Aggregation pipeline settings.

    Parameters:
        tenant_id: Hospital whose rows every fetch is scoped to
        page_size: Rows requested per page
        page_timeout_seconds: Timeout of a single page request
        suspicious_page_sizes: Page lengths that match typical platform row caps;
                               only caps below page_size can be detected
        sample_cap: Representative records kept per window bucket
        refund_category: Transaction type whose negative amounts are refunds
        exclusion_rules: Doctor+department pairs omitted from every aggregate
    """

    tenant_id: str = Field(..., min_length=1, description="Tenant (hospital) identifier")
    page_size: int = Field(default=5000, ge=1, le=100_000, description="Rows per page")
    page_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-page timeout in seconds")
    suspicious_page_sizes: List[int] = Field(
        default_factory=lambda: [500, 1000],
        description="Page lengths that may indicate a silent store-side cap"
    )
    sample_cap: int = Field(default=25, ge=0, le=1000, description="Samples kept per bucket")
    refund_category: str = Field(default="PROCEDURE", min_length=1, description="Refund transaction type")
    exclusion_rules: List[ExclusionRule] = Field(default_factory=list, description="Excluded doctor/department pairs")

    @field_validator("suspicious_page_sizes")
    @classmethod
    def validate_caps(cls, v: List[int]) -> List[int]:
        if any(size < 1 for size in v):
            raise ValueError("Suspicious page sizes must be positive")
        return sorted(set(v))

    @field_validator("refund_category")
    @classmethod
    def normalize_refund_category(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode='after')
    def check_caps_below_page_size(self) -> 'DashboardConfig':
        """Warn about caps that can never match: a full page always continues."""
        unreachable = [size for size in self.suspicious_page_sizes if size >= self.page_size]
        if unreachable:
            logger.warning(
                f"Suspicious page sizes {unreachable} are not below page_size {self.page_size}; "
                "truncation is only detected for caps smaller than the page size"
            )
        return self


class ConfigManager:
    """Configuration manager for store credentials and pipeline settings.

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        store_config = config.get_store_config()
        dashboard_config = config.get_dashboard_config()

        config = ConfigManager.from_file("pulseledger.json")
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary with "store" and
                         "dashboard" sections
        """
        self._config_data = config_data
        self._store_config: Optional[StoreConfig] = None
        self._dashboard_config: Optional[DashboardConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - PL_DB_TYPE, PL_DB_PATH, PL_DB_HOST, PL_DB_PORT, PL_DB_NAME,
              PL_DB_USER, PL_DB_PASSWORD, PL_DB_CONNECTION_STRING, PL_DB_SSL_MODE
            - PL_TENANT_ID: Tenant (hospital) identifier
            - PL_PAGE_SIZE, PL_PAGE_TIMEOUT, PL_SUSPICIOUS_PAGE_SIZES (comma separated)
            - PL_SAMPLE_CAP, PL_REFUND_CATEGORY
            - PL_EXCLUDED_DOCTOR and PL_EXCLUDED_DEPARTMENT: one exclusion pair

        A .env file in the working directory (or env_file) is loaded first;
        variables already set in the environment win.
        """
        env_path = env_file or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        def env(name: str, default: Optional[str] = None) -> Optional[str]:
            return os.getenv(f"{ENV_PREFIX}{name}") or default

        try:
            port = int(env("DB_PORT")) if env("DB_PORT") else None
        except ValueError:
            raise ConfigurationError(f"{ENV_PREFIX}DB_PORT must be an integer") from None

        store = {
            "db_type": env("DB_TYPE", "duckdb"),
            "db_path": env("DB_PATH"),
            "host": env("DB_HOST"),
            "port": port,
            "database": env("DB_NAME"),
            "username": env("DB_USER"),
            "password": env("DB_PASSWORD"),
            "connection_string": env("DB_CONNECTION_STRING"),
            "ssl_mode": env("DB_SSL_MODE"),
        }

        dashboard: Dict[str, Any] = {"tenant_id": env("TENANT_ID")}
        for key, name in (
            ("page_size", "PAGE_SIZE"),
            ("page_timeout_seconds", "PAGE_TIMEOUT"),
            ("sample_cap", "SAMPLE_CAP"),
            ("refund_category", "REFUND_CATEGORY"),
        ):
            if env(name) is not None:
                dashboard[key] = env(name)
        if env("SUSPICIOUS_PAGE_SIZES") is not None:
            dashboard["suspicious_page_sizes"] = [
                part.strip() for part in env("SUSPICIOUS_PAGE_SIZES").split(",") if part.strip()
            ]

        doctor, department = env("EXCLUDED_DOCTOR"), env("EXCLUDED_DEPARTMENT")
        if doctor or department:
            if not (doctor and department):
                raise ConfigurationError(
                    f"{ENV_PREFIX}EXCLUDED_DOCTOR and {ENV_PREFIX}EXCLUDED_DEPARTMENT must be set together"
                )
            dashboard["exclusion_rules"] = [{"doctor": doctor, "department": department}]

        return cls({"store": store, "dashboard": dashboard})

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config file is not valid JSON
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {str(e)}") from e

        return cls(config_data)

    def get_store_config(self) -> StoreConfig:
        """Get the validated store configuration.

        Raises:
            ConfigurationError: If the store section is invalid
        """
        if self._store_config is None:
            store_data = {
                key: value for key, value in self._config_data.get("store", {}).items()
                if value is not None
            }
            try:
                self._store_config = StoreConfig(**store_data)
            except (PydanticValidationError, ValueError) as e:
                raise ConfigurationError(f"Invalid store configuration: {_summarize(e)}") from None
        return self._store_config

    def get_dashboard_config(self) -> DashboardConfig:
        """Get the validated pipeline configuration.

        Raises:
            ConfigurationError: If tenant scope, paging or exclusion rules are invalid
        """
        if self._dashboard_config is None:
            dashboard_data = {
                key: value for key, value in self._config_data.get("dashboard", {}).items()
                if value is not None
            }
            try:
                self._dashboard_config = DashboardConfig(**dashboard_data)
            except PydanticValidationError as e:
                raise ConfigurationError(f"Invalid dashboard configuration: {_summarize(e)}") from None
        return self._dashboard_config


def _summarize(error: Exception) -> str:
    # Never echo input values: they may contain credentials.
    if isinstance(error, PydanticValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in item['loc']) or 'config'}: {item['msg']}"
            for item in error.errors()
        )
    return str(error)

