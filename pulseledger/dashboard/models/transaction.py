"""Pydantic models for the transaction write endpoint."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from pulseledger.domain.records import DATE_PATTERN, TransactionStatus


class TransactionCreate(BaseModel):
    """Request body for recording a patient transaction.

    A client-supplied id makes the call safe to repeat: a second request with
    the same id is reported as already recorded instead of failing.
    """

    id: Optional[str] = Field(None, min_length=1, max_length=64, description="Client-supplied transaction id")
    patient_id: str = Field(..., min_length=1, description="Patient the transaction belongs to")
    amount: Decimal = Field(..., description="Signed amount; refunds and discounts are negative")
    status: TransactionStatus = Field(TransactionStatus.COMPLETED, description="Transaction status")
    transaction_type: Optional[str] = Field(None, description="ENTRY_FEE, CONSULTATION, PROCEDURE, ...")
    transaction_date: Optional[str] = Field(None, description="Explicit transaction date (YYYY-MM-DD)")
    doctor_name: Optional[str] = Field(None, description="Attending doctor name")
    department: Optional[str] = Field(None, description="Department code")
    payment_mode: Optional[str] = Field(None, description="CASH, CARD, UPI, ...")
    description: Optional[str] = Field(None, max_length=500, description="Free-text description")

    @field_validator("transaction_date")
    @classmethod
    def validate_transaction_date(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not DATE_PATTERN.match(v):
            raise ValueError(f"transaction_date must be YYYY-MM-DD. Got: {v}")
        return v

    @field_validator("transaction_type")
    @classmethod
    def normalize_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None


class TransactionReceipt(BaseModel):
    """Outcome of a recorded transaction."""

    id: str = Field(..., description="Transaction identifier")
    already_recorded: bool = Field(False, description="True when the id existed before this call")
    activity_updated: bool = Field(False, description="True when the patient's last activity moved forward")
