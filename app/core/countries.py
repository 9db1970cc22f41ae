"""Supported ramp countries: currency and mobile-money phone code."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Country:
    name: str
    currency: str
    symbol: str
    phone_code: str


COUNTRIES: dict[str, Country] = {
    "KE": Country(name="Kenya", currency="KES", symbol="KE", phone_code="254"),
    "UG": Country(name="Uganda", currency="UGX", symbol="UG", phone_code="256"),
}


def get_country(code: str | None) -> Country | None:
    """Look up a country by ISO code (case-insensitive)."""
    if not code:
        return None
    return COUNTRIES.get(code.upper())
