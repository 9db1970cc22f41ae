"""
Form validation and unit conversion.

Everything here runs synchronously before any external call, so a failure
never leaves the ``input`` state. Amount strings are handled as exact
decimals; token amounts are converted with string arithmetic so large
values never pass through a float or a precision-limited Decimal context.
"""

import re
from decimal import Decimal, InvalidOperation

from web3 import Web3

from app.core.countries import Country
from app.core.errors import ValidationError

AMOUNT_PATTERN = re.compile(r"^\d+(?:\.\d+)?$")
BUSINESS_NUMBER_PATTERN = re.compile(r"^\d{4,10}$")

# Characters users commonly type inside phone numbers
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")


def _plain(value: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros (2E+3 -> '2000')."""
    return format(value.normalize(), "f")


def parse_amount(raw: str | None, field: str = "amount") -> Decimal:
    """Parse a positive decimal amount string or raise ValidationError."""
    if raw is None or not str(raw).strip():
        raise ValidationError("Amount is required", field=field)
    text = str(raw).strip().replace(",", "")
    if not AMOUNT_PATTERN.match(text):
        raise ValidationError("Amount must be a positive number", field=field)
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ValidationError("Amount must be a positive number", field=field)
    if value <= 0:
        raise ValidationError("Amount must be a positive number", field=field)
    return value


def validate_amount(raw: str | None, minimum: Decimal, maximum: Decimal) -> Decimal:
    """
    Parse an amount and check it against the configured [minimum, maximum].

    ``validate_amount("500", Decimal("2000"), Decimal("20000"))`` raises
    ValidationError("Amount must be between 2000 and 20000").
    """
    value = parse_amount(raw)
    if value < minimum or value > maximum:
        raise ValidationError(
            f"Amount must be between {_plain(minimum)} and {_plain(maximum)}",
            field="amount",
        )
    return value


def normalize_phone(raw: str | None, country: Country) -> str:
    """
    Normalize a mobile-money number to E.164 for *country*.

    Accepts ``07XXXXXXXX``, ``7XXXXXXXX``, ``<code>7XXXXXXXX`` and
    ``+<code>7XXXXXXXX``; returns ``+<code>7XXXXXXXX``.
    """
    if raw is None or not str(raw).strip():
        raise ValidationError("Phone number is required", field="phone")

    text = _PHONE_SEPARATORS.sub("", str(raw))
    pattern = re.compile(rf"^(?:\+?{country.phone_code}|0)?(7\d{{8}})$")
    match = pattern.match(text)
    if not match:
        raise ValidationError(
            f"Please enter a valid {country.name} phone number", field="phone",
        )
    return f"+{country.phone_code}{match.group(1)}"


def validate_business_number(raw: str | None) -> str:
    """Paybill business numbers are 4-10 digits."""
    text = (raw or "").strip()
    if not text:
        raise ValidationError("Business number is required", field="business_number")
    if not BUSINESS_NUMBER_PATTERN.match(text):
        raise ValidationError(
            "Business number must be 4-10 digits", field="business_number",
        )
    return text


def validate_account_number(raw: str | None) -> str:
    text = (raw or "").strip()
    if not text:
        raise ValidationError("Account number is required", field="account_number")
    return text


def validate_address(raw: str | None, field: str = "recipient") -> str:
    """Return the checksummed form of an EVM address."""
    text = (raw or "").strip()
    if not text:
        raise ValidationError("Recipient address is required", field=field)
    if not Web3.is_address(text):
        raise ValidationError("Please enter a valid wallet address", field=field)
    return Web3.to_checksum_address(text)


# ---------------------------------------------------------------------------
# Token unit conversion
# ---------------------------------------------------------------------------


def to_base_units(amount: str | Decimal, decimals: int = 18) -> int:
    """
    Convert a human-readable decimal amount to the token's base unit.

    Rejects malformed strings and amounts with more fractional digits than
    the token supports instead of truncating them.
    """
    text = format(amount, "f") if isinstance(amount, Decimal) else str(amount).strip()
    if not AMOUNT_PATTERN.match(text):
        raise ValidationError(f"Invalid token amount: {amount!r}", field="amount")

    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0")
    if len(frac) > decimals:
        raise ValidationError(
            f"Amount has more than {decimals} decimal places", field="amount",
        )
    return int(whole) * 10 ** decimals + int(frac.ljust(decimals, "0") or "0")


def from_base_units(value: int, decimals: int = 18) -> str:
    """Format a base-unit integer as a decimal string ('1500000000000000000' -> '1.5')."""
    if value < 0:
        raise ValueError("Token amounts cannot be negative")
    whole, frac = divmod(int(value), 10 ** decimals)
    if frac == 0:
        return str(whole)
    frac_text = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{frac_text}"
