"""Record Schemas - Strict Pydantic models for store rows.

This module defines the typed records the aggregation pipeline works on:
financial transactions, patients and daily expenses as they come out of the
record store, plus the time windows they are aggregated over.

Conventions:
    - Amounts are decimal.Decimal. Floats handed over by a driver are
      converted through their string form so no binary-float error enters
      a sum.
    - Date and timestamp fields are kept as strings. Driver date/datetime
      objects are turned into ISO strings; the canonical calendar date is
      resolved later by pulseledger.domain.dates without timezone parsing.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TransactionStatus(str, Enum):
    """Lifecycle status of a patient transaction."""
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, Enum):
    """Approval status of a daily expense."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def _to_decimal(v) -> Decimal:
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("Amount cannot be a boolean")
    if isinstance(v, float):
        v = repr(v)
    try:
        return Decimal(str(v).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {v!r}") from None


def _to_date_string(v) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    if isinstance(v, str):
        v = v.strip()
        return v or None
    raise ValueError(f"Unsupported date value: {v!r}")


class TransactionRecord(BaseModel):
    """A financial transaction attached to a patient.

    Attributes:
        id: Transaction identifier
        amount: Signed amount; refunds and discounts are negative
        status: COMPLETED, PENDING or CANCELLED. Only COMPLETED counts as revenue
        transaction_date: Explicit transaction date, if the row has one
        created_at: Row creation timestamp
        doctor_name: Attending doctor (used by the exclusion filter)
        department: Department code (used by the exclusion filter)
        linked_entry_date: Backdated entry date of the linked patient
        patient_id: Link to the patient row
        transaction_type: ENTRY_FEE, CONSULTATION, PROCEDURE, ...
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Transaction identifier")
    amount: Decimal = Field(..., description="Signed transaction amount")
    status: TransactionStatus = Field(..., description="Transaction status")
    transaction_date: Optional[str] = Field(None, description="Explicit transaction date")
    created_at: Optional[str] = Field(None, description="Creation timestamp")
    doctor_name: Optional[str] = Field(None, description="Attending doctor name")
    department: Optional[str] = Field(None, description="Department code")
    linked_entry_date: Optional[str] = Field(
        None, description="Date of entry of the linked patient (may be backdated)"
    )
    patient_id: Optional[str] = Field(None, description="Linked patient identifier")
    transaction_type: Optional[str] = Field(None, description="Transaction category")

    @field_validator("id", "patient_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        return None if v is None else str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v) -> Decimal:
        return _to_decimal(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("transaction_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @field_validator("transaction_date", "created_at", "linked_entry_date", mode="before")
    @classmethod
    def coerce_dates(cls, v) -> Optional[str]:
        return _to_date_string(v)

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


class PatientRecord(BaseModel):
    """A registered patient.

    date_of_entry may predate created_at when a registration was backdated;
    it then wins over every transaction date of that patient.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Patient identifier")
    created_at: Optional[str] = Field(None, description="Registration timestamp")
    date_of_entry: Optional[str] = Field(None, description="User-set visit/entry date")
    is_active: bool = Field(True, description="Whether the patient is active")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        return None if v is None else str(v)

    @field_validator("created_at", "date_of_entry", mode="before")
    @classmethod
    def coerce_dates(cls, v) -> Optional[str]:
        return _to_date_string(v)

    @field_validator("is_active", mode="before")
    @classmethod
    def default_active(cls, v):
        return True if v is None else v


class ExpenseRecord(BaseModel):
    """A daily operating expense (salaries, utilities, supplies, ...)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Expense identifier")
    amount: Decimal = Field(..., description="Expense amount")
    category: Optional[str] = Field(None, alias="expense_category", description="Expense category")
    expense_date: Optional[str] = Field(None, description="Expense date")
    approval_status: Optional[ApprovalStatus] = Field(None, description="Approval status")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        return None if v is None else str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v) -> Decimal:
        return _to_decimal(v)

    @field_validator("expense_date", mode="before")
    @classmethod
    def coerce_date(cls, v) -> Optional[str]:
        return _to_date_string(v)

    @field_validator("approval_status", mode="before")
    @classmethod
    def normalize_approval(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or None
        return v

    @property
    def is_rejected(self) -> bool:
        return self.approval_status == ApprovalStatus.REJECTED


class TimeWindow(BaseModel):
    """An inclusive calendar-day range with a label.

    Bounds are canonical YYYY-MM-DD strings and are compared as strings.
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., min_length=1, description="Window label (today, this_week, ...)")
    start_date: str = Field(..., description="First day of the window (inclusive)")
    end_date: str = Field(..., description="Last day of the window (inclusive)")

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_bound(cls, v: str) -> str:
        if not DATE_PATTERN.match(v):
            raise ValueError(f"Window bound must be YYYY-MM-DD. Got: {v}")
        date.fromisoformat(v)
        return v

    @model_validator(mode="after")
    def validate_order(self) -> 'TimeWindow':
        if self.start_date > self.end_date:
            raise ValueError(
                f"Window {self.label} starts after it ends: {self.start_date} > {self.end_date}"
            )
        return self

    def contains(self, canonical_date: str) -> bool:
        return self.start_date <= canonical_date <= self.end_date
