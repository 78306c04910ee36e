"""Shared fixtures: an in-memory DuckDB record store and a pipeline config.

seeded_store holds one tenant's March 2024 around the reference day
Friday 2024-03-15 (ThisWeek 2024-03-09..15, ThisMonth 2024-03-01..31),
plus rows of a second tenant that must never be counted.
"""

from decimal import Decimal

import pytest

from pulseledger.adapters.storage.duckdb_adapter import DuckDBAdapter
from pulseledger.infrastructure.config_manager import DashboardConfig

TENANT = "H1"


@pytest.fixture
def duckdb_store():
    """In-memory DuckDB store with the hospital schema."""
    adapter = DuckDBAdapter(db_path=":memory:")
    assert adapter.initialize_schema().is_success()
    yield adapter
    adapter.close()


@pytest.fixture
def insert_rows(duckdb_store):
    """Insert rows into an entity, filling in the tenant column."""

    def _insert(entity, rows, tenant=TENANT):
        for row in rows:
            result = duckdb_store.insert_record(entity, {"hospital_id": tenant, **row})
            assert result.is_success(), result.error

    return _insert


@pytest.fixture
def dashboard_config():
    """Small pages so pagination is exercised with a handful of rows."""
    return DashboardConfig(
        tenant_id=TENANT,
        page_size=4,
        page_timeout_seconds=5.0,
        suspicious_page_sizes=[],
    )


@pytest.fixture
def seeded_store(duckdb_store, insert_rows):
    """A store holding one tenant's month plus a second tenant's noise."""
    insert_rows("patients", [
        {"id": "P001", "created_at": "2024-03-15T08:00:00Z"},
        {"id": "P002", "created_at": "2024-03-15T08:30:00Z", "date_of_entry": "2024-01-10"},
        {"id": "P003", "created_at": "2024-03-01T08:00:00Z", "is_active": False},
    ])
    insert_rows("transactions", [
        {"id": "T001", "patient_id": "P001", "amount": Decimal("100"), "status": "COMPLETED",
         "transaction_type": "CONSULTATION", "created_at": "2024-03-15T10:00:00Z"},
        {"id": "T002", "patient_id": "P001", "amount": Decimal("-20"), "status": "COMPLETED",
         "transaction_type": "PROCEDURE", "created_at": "2024-03-15T11:00:00Z"},
        {"id": "T003", "patient_id": "P001", "amount": Decimal("50"), "status": "COMPLETED",
         "created_at": "2024-03-15 23:30:00+05:30"},
        {"id": "T004", "patient_id": "P002", "amount": Decimal("500"), "status": "COMPLETED",
         "created_at": "2024-03-15T09:00:00Z"},
        {"id": "T005", "patient_id": "P001", "amount": Decimal("70"), "status": "CANCELLED",
         "created_at": "2024-03-15T12:00:00Z"},
        {"id": "T006", "patient_id": "P001", "amount": Decimal("300"), "status": "COMPLETED",
         "doctor_name": "Dr. Rao", "department": "ortho", "created_at": "2024-03-15T13:00:00Z"},
        {"id": "T007", "patient_id": "P001", "amount": Decimal("40"), "status": "COMPLETED",
         "created_at": "2024-03-11T10:00:00Z"},
        {"id": "T008", "patient_id": "P001", "amount": Decimal("25"), "status": "COMPLETED",
         "transaction_date": "2024-03-02", "created_at": "2024-03-15T14:00:00Z"},
    ])
    insert_rows("transactions", [
        {"id": "T100", "patient_id": "Q1", "amount": Decimal("999"), "status": "COMPLETED",
         "created_at": "2024-03-15T10:00:00Z"},
    ], tenant="H2")
    insert_rows("expenses", [
        {"id": "E001", "amount": Decimal("30"), "expense_category": "SUPPLIES",
         "expense_date": "2024-03-15", "approval_status": "APPROVED"},
        {"id": "E002", "amount": Decimal("1000"), "expense_category": "EQUIPMENT",
         "expense_date": "2024-03-15", "approval_status": "REJECTED"},
        {"id": "E003", "amount": Decimal("15"), "expense_category": "UTILITIES",
         "expense_date": "2024-03-12"},
    ])
    insert_rows("doctors", [
        {"id": "D1", "name": "Dr. Rao"},
        {"id": "D2", "name": "Dr. Iyer", "is_active": False},
    ])
    insert_rows("beds", [{"id": f"B{i}"} for i in range(3)])
    insert_rows("appointments", [
        {"id": "A1", "appointment_date": "2024-03-15"},
        {"id": "A2", "appointment_date": "2024-03-15T14:00:00"},
        {"id": "A3", "appointment_date": "2024-03-16"},
    ])
    return duckdb_store
