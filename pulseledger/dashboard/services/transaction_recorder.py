"""Transaction write path.

Records a patient transaction and then moves the patient's last activity
timestamp forward. Both steps are safe to repeat: a duplicate id counts as
already recorded, and the activity update never moves the timestamp back.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from pulseledger.dashboard.models.transaction import TransactionCreate, TransactionReceipt
from pulseledger.dashboard.services.record_fetcher import TENANT_COLUMN
from pulseledger.domain.ports import CORE_COLUMNS, RecordStorePort, Result, StoreErrorKind

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionRecorder:
    """Inserts transactions for one tenant.

    Parameters:
        store: Record store adapter
        tenant_id: Tenant every new row is scoped to
        clock: Returns the current (timezone-aware) time
    """

    def __init__(
        self,
        store: RecordStorePort,
        tenant_id: str,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.store = store
        self.tenant_id = tenant_id
        self.clock = clock

    def _build_row(self, request: TransactionCreate) -> dict:
        row = {
            "id": request.id or str(uuid.uuid4()),
            TENANT_COLUMN: self.tenant_id,
            "patient_id": request.patient_id,
            "amount": request.amount,
            "status": request.status.value,
            "transaction_type": request.transaction_type,
            "transaction_date": request.transaction_date,
            "created_at": self.clock().isoformat(),
            "doctor_name": request.doctor_name,
            "department": request.department,
            "payment_mode": request.payment_mode,
            "description": request.description,
        }
        return {key: value for key, value in row.items() if value is not None}

    def _insert(self, row: dict) -> Result[str]:
        result = self.store.insert_record("transactions", row)
        if result.is_failure() and result.error_type == StoreErrorKind.MISSING_COLUMN.value:
            core = set(CORE_COLUMNS["transactions"]) | {TENANT_COLUMN}
            narrowed = {key: value for key, value in row.items() if key in core}
            logger.warning(
                f"Transaction {row['id']} references a missing column; "
                f"retrying once with {sorted(narrowed)}"
            )
            result = self.store.insert_record("transactions", narrowed)
        return result

    def record_transaction(self, request: TransactionCreate) -> Result[TransactionReceipt]:
        """Record a transaction and advance the patient's last activity.

        Parameters:
            request: Validated transaction payload

        Returns:
            Result[TransactionReceipt]: Receipt, or a failure whose error_type
            is the classified store error (MISSING_COLUMN after the single
            retry, TIMEOUT, CONNECTION, UNKNOWN)
        """
        row = self._build_row(request)

        inserted = self._insert(row)
        already_recorded = False
        if inserted.is_failure():
            if inserted.error_type != StoreErrorKind.DUPLICATE_KEY.value:
                logger.error(f"Failed to record transaction {row['id']}: {inserted.error}")
                return Result.failure_result(
                    inserted.error,
                    error_type=inserted.error_type,
                    error_details={"transaction_id": row["id"], "step": "insert"}
                )
            already_recorded = True
            logger.info(f"Transaction {row['id']} already recorded")

        touched = self.store.touch_last_activity("patients", request.patient_id, row["created_at"])
        if touched.is_failure():
            logger.error(
                f"Transaction {row['id']} recorded but last activity of patient "
                f"{request.patient_id} was not updated: {touched.error}"
            )
            return Result.failure_result(
                touched.error,
                error_type=touched.error_type,
                error_details={"transaction_id": row["id"], "step": "touch_last_activity"}
            )

        return Result.success_result(TransactionReceipt(
            id=row["id"],
            already_recorded=already_recorded,
            activity_updated=bool(touched.value),
        ))
