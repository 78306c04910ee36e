"""Transaction write endpoint."""

import logging

from fastapi import APIRouter, HTTPException, Response

from pulseledger.dashboard.api.dependencies import RecorderDep
from pulseledger.dashboard.models.transaction import TransactionCreate, TransactionReceipt
from pulseledger.domain.ports import StoreErrorKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transactions"])

_UNAVAILABLE = {StoreErrorKind.TIMEOUT.value, StoreErrorKind.CONNECTION.value}


@router.post("/transactions", response_model=TransactionReceipt, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    recorder: RecorderDep,
    response: Response,
) -> TransactionReceipt:
    """Record a patient transaction.

    Returns 201 for a new transaction and 200 when the client-supplied id
    was already recorded, so retries are safe.
    """
    result = recorder.record_transaction(payload)
    if result.is_failure():
        status_code = 503 if result.error_type in _UNAVAILABLE else 500
        raise HTTPException(status_code=status_code, detail=f"{result.error_type}: {result.error}")

    receipt = result.value
    if receipt.already_recorded:
        response.status_code = 200
    return receipt
