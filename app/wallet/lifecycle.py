"""
Flow lifecycle states and provider-status mapping.

``FlowState`` is what the wallet UI renders. ``ReconcileStatus`` is the
finer-grained status used while polling.
"""

import enum

from app.schemas.ramp import TransferStatus


class FlowKind(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"
    PAY_BILL = "pay_bill"
    SEND = "send"


class FlowState(str, enum.Enum):
    INPUT = "input"
    PROCESSING = "processing"
    SUCCESS = "success"
    CANCELLED = "cancelled"


class ReconcileStatus(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"          # provider answered with an unclassified status
    PROCESSING = "processing"
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"              # polling gave up (deadline)


TERMINAL_STATUSES = {
    ReconcileStatus.SUCCESS,
    ReconcileStatus.CANCELLED,
    ReconcileStatus.ERROR,
}

PROVIDER_STATUS_MAP: dict[str, ReconcileStatus] = {
    TransferStatus.RECEIVED_FIAT_FUNDS.value: ReconcileStatus.SUCCESS,
    TransferStatus.COMPLETE.value: ReconcileStatus.SUCCESS,
    TransferStatus.FAILED.value: ReconcileStatus.CANCELLED,
    TransferStatus.STARTED.value: ReconcileStatus.PROCESSING,
}


def map_provider_status(status: str | None) -> ReconcileStatus:
    """Map a provider transfer status to a reconcile status. Unknown values are PENDING."""
    if status is None:
        return ReconcileStatus.PENDING
    return PROVIDER_STATUS_MAP.get(status, ReconcileStatus.PENDING)
