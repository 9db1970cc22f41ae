"""
Pydantic schemas for flow submissions and lifecycle snapshots.

Request schemas only shape the input; bounds, phone format and address
checks run inside the orchestrator so that a rejected submission is
reported as a field error without leaving the ``input`` state.
"""

from pydantic import BaseModel, Field

from app.schemas.ramp import Quote, Transfer, UserDetails


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class BuyRequest(BaseModel):
    """Deposit fiat via mobile money and receive KESC."""
    amount: str = Field(..., examples=["5000"])
    phone: str = Field(..., examples=["0712345678"])
    user_details: UserDetails


class SellRequest(BaseModel):
    """Redeem KESC to a mobile-money wallet."""
    amount: str = Field(..., examples=["5000"])
    phone: str = Field(..., examples=["0712345678"])
    user_details: UserDetails


class PayBillRequest(BaseModel):
    """Pay a merchant paybill with KESC."""
    amount: str = Field(..., examples=["2500"])
    business_number: str = Field(..., examples=["888880"])
    account_number: str = Field(..., examples=["ACC-1029"])
    account_name: str = Field("OneRamp", max_length=100)


class SendRequest(BaseModel):
    """Peer-to-peer KESC transfer."""
    recipient: str = Field(..., examples=["0x7a16ff8270133f063aab6c9977183d9e72835428"])
    amount: str = Field(..., examples=["150"])


class CancelRequest(BaseModel):
    """Abandoning an in-flight transfer must be explicitly confirmed."""
    confirm: bool = False


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class FlowError(BaseModel):
    kind: str
    message: str
    field: str | None = None


class FlowSnapshot(BaseModel):
    """Everything the wallet UI needs to render the current flow."""
    state: str
    status: str
    flow: str | None = None
    error: FlowError | None = None
    quote: Quote | None = None
    transfer: Transfer | None = None
    tx_hash: str | None = None
    provider_status: str | None = None


class BalanceResponse(BaseModel):
    address: str | None
    balance: str | None
    balance_base_units: str | None


class TransactionRecordResponse(BaseModel):
    id: str
    type: str
    amount: str
    status: str
    timestamp: int
    from_address: str
    to_address: str
    block_number: int


class TransactionListResponse(BaseModel):
    items: list[TransactionRecordResponse]
    total: int
