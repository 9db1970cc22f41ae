"""
Pydantic schemas for the OneRamp wire format.

The provider speaks camelCase JSON; models use snake_case attributes with
camelCase aliases. Dump outgoing payloads with ``by_alias=True``.
"""

import enum
from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RampModel(BaseModel):
    """Base model: camelCase aliases, numbers accepted where strings are expected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class TransferDirection(str, enum.Enum):
    IN = "in"    # fiat -> token (buy)
    OUT = "out"  # token -> fiat (sell)


class TransferStatus(str, enum.Enum):
    """Provider-reported transfer status."""
    STARTED = "TransferStarted"
    RECEIVED_FIAT_FUNDS = "TransferReceivedFiatFunds"
    COMPLETE = "TransferComplete"
    FAILED = "TransferFailed"


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class QuotePayload(RampModel):
    fiat_type: str
    crypto_type: str
    network: str
    fiat_amount: str
    country: str
    address: str


class BillQuotePayload(QuotePayload):
    region: str
    raw_amount: str


class Quote(RampModel):
    """A price lock from the provider. Immutable once issued."""

    model_config = ConfigDict(frozen=True)

    quote_id: str
    fiat_type: str | None = None
    crypto_type: str | None = None
    network: str | None = None
    fiat_amount: str | None = None
    address: str | None = None
    crypto_amount: str | None = None
    amount_paid: str | None = None
    fee: str | None = None
    guaranteed_until: datetime | None = None
    transfer_type: str | None = None
    used: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when the guaranteed-until time has passed. No expiry means never."""
        if self.guaranteed_until is None:
            return False
        now = now or datetime.now(timezone.utc)
        until = self.guaranteed_until
        if until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        return now >= until


class QuoteResponse(RampModel):
    quote: Quote
    kyc: dict | None = None
    fiat_account: dict | None = None


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


class UserDetails(RampModel):
    """KYC profile the provider requires for mobile-money transfers."""
    name: str
    country: str
    address: str
    phone: str
    dob: str
    id_number: str
    id_type: str
    additional_id_type: str | None = None
    additional_id_number: str | None = None


class TransferPayload(RampModel):
    phone: str
    operator: str
    quote_id: str
    user_details: UserDetails


class BillTransferPayload(RampModel):
    quote_id: str
    account_name: str
    account_number: str
    business_number: str


class UserActionDetails(RampModel):
    account_name: str | None = None
    account_number: str | None = None
    institution_name: str | None = None
    transaction_reference: str | None = None
    user_action_type: str | None = None


class Transfer(RampModel):
    """Provider-side settlement record tied to one quote."""
    transfer_id: str
    transfer_address: str | None = None
    transfer_status: str | None = None
    user_action_details: UserActionDetails | None = None


class TransferStatusResponse(RampModel):
    transfer_id: str | None = None
    status: str | None = Field(
        default=None,
        validation_alias=AliasChoices("status", "transferStatus"),
    )


class TransactionHashPayload(RampModel):
    tx_hash: str
    transfer_id: str
