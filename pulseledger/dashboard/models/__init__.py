"""Dashboard Pydantic models."""

from pulseledger.dashboard.models.health import HealthResponse, StoreHealth
from pulseledger.dashboard.models.stats import SnapshotError
from pulseledger.dashboard.models.transaction import TransactionCreate, TransactionReceipt
