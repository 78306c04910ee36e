"""Unit tests for canonical date resolution."""

from datetime import date, datetime, timedelta, timezone

import pytest

from pulseledger.domain.dates import canonical_date, first_canonical, normalize_date_string
from pulseledger.domain.records import ExpenseRecord, PatientRecord, TransactionRecord


def make_transaction(**overrides) -> TransactionRecord:
    data = {"id": "T1", "amount": "100", "status": "COMPLETED"}
    data.update(overrides)
    return TransactionRecord(**data)


class TestNormalizeDateString:
    """Reduction of dates and timestamps to YYYY-MM-DD."""

    @pytest.mark.parametrize("value", [
        "2024-03-15",
        "2024-03-15T10:00:00Z",
        "2024-03-15T23:59:59.999+00:00",
        "2024-03-15 10:00:00+05:30",
        "  2024-03-15  ",
    ])
    def test_strips_time_and_timezone_suffix(self, value):
        """Test that every supported shape reduces to the same date."""
        assert normalize_date_string(value) == "2024-03-15"

    def test_keeps_wall_clock_date_of_offset_timestamp(self):
        """Test that a late-evening timestamp with an offset is not shifted to UTC."""
        ist = timezone(timedelta(hours=5, minutes=30))
        assert normalize_date_string("2024-03-15T23:30:00+05:30") == "2024-03-15"
        assert normalize_date_string(datetime(2024, 3, 15, 23, 30, tzinfo=ist)) == "2024-03-15"

    def test_accepts_date_objects(self):
        """Test that driver date objects are normalized."""
        assert normalize_date_string(date(2024, 1, 5)) == "2024-01-05"

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "15/03/2024", "2024-3-15"])
    def test_rejects_empty_or_malformed(self, value):
        """Test that unusable candidates normalize to None."""
        assert normalize_date_string(value) is None

    def test_idempotent_on_canonical_dates(self):
        """Test that normalizing a canonical date returns it unchanged."""
        once = normalize_date_string("2024-02-29")
        assert normalize_date_string(once) == once == "2024-02-29"

    def test_first_canonical_skips_unusable_candidates(self):
        """Test that the first usable candidate wins."""
        assert first_canonical(None, "", "garbage", "2024-05-01T08:00:00Z", "2024-06-01") == "2024-05-01"
        assert first_canonical(None, "") is None


class TestCanonicalDate:
    """Date precedence per record type."""

    def test_linked_entry_date_wins_over_creation(self):
        """Test that a backdated patient entry date overrides created_at."""
        record = make_transaction(linked_entry_date="2024-01-01", created_at="2024-03-15T10:00:00Z")
        assert canonical_date(record) == "2024-01-01"

    def test_linked_entry_date_wins_over_transaction_date(self):
        """Test that the linked entry date outranks the explicit transaction date."""
        record = make_transaction(
            linked_entry_date="2024-01-01",
            transaction_date="2024-02-01",
            created_at="2024-03-15T10:00:00Z",
        )
        assert canonical_date(record) == "2024-01-01"

    def test_transaction_date_wins_over_creation(self):
        """Test that an explicit transaction date outranks created_at."""
        record = make_transaction(transaction_date="2024-02-01", created_at="2024-03-15T10:00:00Z")
        assert canonical_date(record) == "2024-02-01"

    def test_falls_back_to_creation_timestamp(self):
        """Test that created_at is truncated to its date when nothing else is set."""
        record = make_transaction(created_at="2024-03-15T22:10:00+05:30")
        assert canonical_date(record) == "2024-03-15"

    def test_malformed_candidate_is_skipped(self):
        """Test that a malformed higher-precedence date does not hide a valid one."""
        record = make_transaction(linked_entry_date="not-a-date", created_at="2024-03-15T10:00:00Z")
        assert canonical_date(record) == "2024-03-15"

    def test_record_without_dates_is_undated(self):
        """Test that a record with no usable candidate resolves to None."""
        assert canonical_date(make_transaction()) is None

    def test_patient_entry_date_before_creation(self):
        """Test patient precedence: date_of_entry, then created_at."""
        patient = PatientRecord(id="P1", created_at="2024-03-15T10:00:00Z", date_of_entry="2024-03-01")
        assert canonical_date(patient) == "2024-03-01"
        assert canonical_date(PatientRecord(id="P2", created_at="2024-03-15T10:00:00Z")) == "2024-03-15"

    def test_expense_uses_expense_date(self):
        """Test that expenses resolve to their expense date."""
        expense = ExpenseRecord(id="E1", amount="10", expense_category="UTILITIES", expense_date="2024-03-10")
        assert canonical_date(expense) == "2024-03-10"

    def test_string_input_is_normalized(self):
        """Test that canonical_date is idempotent on YYYY-MM-DD strings."""
        assert canonical_date("2024-03-15") == "2024-03-15"
        assert canonical_date(canonical_date("2024-03-15T01:00:00Z")) == "2024-03-15"

    def test_unsupported_type_raises(self):
        """Test that unknown record types are rejected."""
        with pytest.raises(TypeError):
            canonical_date(42)
