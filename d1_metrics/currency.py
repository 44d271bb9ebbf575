"""
Currency normalization to USD cents

The rate table is static and approximate; precise FX is out of scope.
Currency codes are not validated against ISO-4217 since vendor data is messy.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from core.logging import get_logger

logger = get_logger(__name__, domain="d1")

Number = Union[int, float, Decimal]

# US cents per one unit of the currency, e.g. 1 EUR ~ 1.10 USD -> 110
CENTS_PER_UNIT = {
    "USD": 100,
    "EUR": 110,
    "GBP": 127,
    "CAD": 73,
    "AUD": 65,
    "NZD": 60,
    "CHF": 113,
    # Asia
    "JPY": 0.67,
    "KRW": 0.075,
    "CNY": 14,
    "INR": 1.2,
    "IDR": 0.0063,
    "PHP": 1.8,
    "THB": 2.9,
    "VND": 0.004,
    "MYR": 23,
    "SGD": 75,
    "TWD": 3.1,
    # Americas
    "BRL": 18,
    "MXN": 5,
    "COP": 0.023,
    "ARS": 0.09,
    "CLP": 0.1,
    "PEN": 27,
    # Europe (non-EUR)
    "SEK": 9.5,
    "NOK": 9.3,
    "DKK": 14.7,
    "PLN": 24,
    "CZK": 4.3,
    "HUF": 0.27,
    "RON": 22,
    "BGN": 56,
    "HRK": 14.5,
    # Middle East / Africa
    "TRY": 3,
    "ZAR": 5.5,
    "AED": 27,
    "SAR": 27,
    "ILS": 28,
    "EGP": 2,
    "NGN": 0.065,
    # CIS
    "RUB": 1.1,
    "UAH": 2.4,
    "KZT": 0.21,
}


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _unknown_currency_multiplier(amount: Number) -> Number:
    # Large amounts are most likely a weak currency, so convert very conservatively
    if amount > 1000:
        return Decimal("0.01")
    if amount > 100:
        return Decimal("0.1")
    return 100


def to_usd_cents(amount: Number, currency: str) -> int:
    """
    Convert an amount in ``currency`` to integer USD cents

    Unknown codes fall back to a magnitude heuristic and are logged.
    """
    rate = CENTS_PER_UNIT.get(currency)
    if rate is None:
        logger.warning(f"Unknown currency: {currency} for amount {amount}")
        rate = _unknown_currency_multiplier(amount)

    return round_half_up(Decimal(str(amount)) * Decimal(str(rate)))
