"""Doctor + department exclusion rules.

Some doctor/department combinations are kept out of the operational
figures entirely. A record is excluded only when BOTH its doctor and its
department match the same configured rule; matching one side is not enough.
"""

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pulseledger.domain.records import TransactionRecord


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().upper()


class ExclusionRule(BaseModel):
    """A doctor+department pair whose records are omitted from every aggregate.

    Both sides are stored case-normalized (stripped, upper-case).
    """

    model_config = ConfigDict(frozen=True)

    doctor: str = Field(..., description="Excluded doctor name")
    department: str = Field(..., description="Excluded department code")

    @field_validator("doctor", "department")
    @classmethod
    def validate_side(cls, v: str) -> str:
        normalized = _normalize(v)
        if not normalized:
            raise ValueError("Exclusion rule sides cannot be empty")
        return normalized

    def matches(self, doctor: Optional[str], department: Optional[str]) -> bool:
        return _normalize(doctor) == self.doctor and _normalize(department) == self.department


class ExclusionFilter:
    """Predicate applied to every transaction before it reaches a bucket."""

    def __init__(self, rules: Iterable[ExclusionRule] = ()):
        self.rules = tuple(rules)

    def is_excluded(self, record: TransactionRecord) -> bool:
        """Return True when the record's doctor and department match a rule."""
        if not self.rules:
            return False
        return any(rule.matches(record.doctor_name, record.department) for rule in self.rules)

    def __repr__(self) -> str:
        pairs = ", ".join(f"{r.doctor}/{r.department}" for r in self.rules)
        return f"ExclusionFilter({pairs})"
