"""
currency.py — Static Currency Conversion

All prices are stored and transmitted in the base currency (TZS). Shoppers may
view amounts in one of the other supported currencies; before an order is sent
to the payment processor the displayed amount is converted back to TZS.

Exchange rates are expressed as units of the currency per 1 TZS:
    - 1 TZS = 1 TZS (base)
    - 1 TZS = 0.0004 USD   (2,500 TZS = 1 USD)
    - 1 TZS = 0.0525 KES   (19 TZS ≈ 1 KES)
    - 1 TZS = 1.48 UGX     (0.68 TZS ≈ 1 UGX)

The base currency has no minor units, so `to_base` always rounds to a whole number
(half away from zero).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from .catalog import BASE_CURRENCY
from .errors import UnsupportedCurrencyError

EXCHANGE_RATES: Dict[str, Decimal] = {
    "TZS": Decimal("1"),
    "USD": Decimal("0.0004"),
    "KES": Decimal("0.0525"),
    "UGX": Decimal("1.48"),
}

DISPLAY_DECIMALS: Dict[str, int] = {
    "TZS": 0,
    "USD": 2,
    "KES": 0,
    "UGX": 0,
}


def exchange_rate(currency_code: str) -> Decimal:
    """Units of `currency_code` per 1 TZS. Raises UnsupportedCurrencyError for unknown codes."""
    try:
        return EXCHANGE_RATES[currency_code]
    except KeyError:
        raise UnsupportedCurrencyError(currency_code) from None


def is_supported(currency_code: str) -> bool:
    return currency_code in EXCHANGE_RATES


def to_base(amount: float, currency_code: str) -> int:
    """
    Converts an amount in `currency_code` to whole base-currency units.

    Args:
        amount (float | Decimal): Amount in `currency_code`. Pass the unrounded
            `to_display` value, not a rounded display amount.
        currency_code (str): One of the supported currency codes.
    Returns:
        int: Amount in TZS, rounded to the nearest integer.
    Raises:
        UnsupportedCurrencyError: For unknown currency codes. Never defaults silently.
    """
    rate = exchange_rate(currency_code)
    base = Decimal(str(amount)) / rate
    return int(base.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_display(amount: float, currency_code: str) -> Decimal:
    """
    Converts a base-currency amount to `currency_code` without rounding.

    `to_base(to_display(x, code), code) == x` for whole base amounts, which does not
    hold for the rounded `from_base` value.

    Raises:
        UnsupportedCurrencyError: For unknown currency codes.
    """
    return Decimal(str(amount)) * exchange_rate(currency_code)


def from_base(amount: float, currency_code: str) -> float:
    """
    Converts a base-currency amount to `currency_code`, rounded to that currency's
    display decimals. For display only.

    Raises:
        UnsupportedCurrencyError: For unknown currency codes.
    """
    converted = to_display(amount, currency_code)
    exponent = Decimal(1).scaleb(-DISPLAY_DECIMALS[currency_code])
    return float(converted.quantize(exponent, rounding=ROUND_HALF_UP))


def convert(amount: float, from_code: str, to_code: str) -> float:
    """Converts between two supported currencies through the base currency."""
    if from_code == to_code:
        exchange_rate(from_code)
        return amount
    if from_code == BASE_CURRENCY:
        return from_base(amount, to_code)
    return from_base(to_base(amount, from_code), to_code)


def format_price(amount: float, currency_code: str) -> str:
    """Formats an amount as e.g. 'TZS 150,000' or 'USD 60.00'."""
    decimals = DISPLAY_DECIMALS.get(currency_code)
    if decimals is None:
        raise UnsupportedCurrencyError(currency_code)
    return f"{currency_code} {amount:,.{decimals}f}"
