"""
catalog.py — Fixed Catalogs Used by the Checkout Wizard

Static reference data for the East African marketplace:
    • Supported countries with their cities, dial codes and local currency
    • Payment methods offered in the wizard and their backend codes
    • Delivery choices and their backend codes

The two mapping tables are strict: a UI value without a backend code raises
`MappingError` instead of passing through unchanged.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import MappingError

BASE_CURRENCY = "TZS"


@dataclass(frozen=True)
class Country:
    name: str
    code: str
    dial_code: str
    currency: str
    cities: Tuple[str, ...]


@dataclass(frozen=True)
class PaymentMethodOption:
    id: str
    label: str
    type: str  # "mobile" or "card"


COUNTRIES: Dict[str, Country] = {
    c.name: c
    for c in (
        Country("Tanzania", "TZ", "255", "TZS",
                ("Dar es Salaam", "Arusha", "Zanzibar", "Dodoma", "Stone Town")),
        Country("Kenya", "KE", "254", "KES", ("Nairobi", "Mombasa")),
        Country("Uganda", "UG", "256", "UGX", ("Kampala", "Entebbe")),
    )
}

PAYMENT_METHODS: Dict[str, PaymentMethodOption] = {
    m.id: m
    for m in (
        PaymentMethodOption("mpesa", "M-Pesa", "mobile"),
        PaymentMethodOption("airtel", "Airtel Money", "mobile"),
        PaymentMethodOption("mixx", "Mixx by Yas", "mobile"),
        PaymentMethodOption("card", "Credit/Debit Card", "card"),
    )
}

DELIVERY_METHODS: Dict[str, str] = {
    "delivery": "Arranged delivery",
    "pickup": "Arrange with seller",
}

# UI identifier -> backend code
PAYMENT_METHOD_CODES: Dict[str, str] = {
    "mpesa": "mobile",
    "airtel": "mobile",
    "mixx": "mobile",
    "card": "card",
}

DELIVERY_METHOD_CODES: Dict[str, str] = {
    "delivery": "delivery",
    "pickup": "pickup",
}


def get_country(name: str) -> Country:
    """
    Looks up a supported country by its display name.

    Raises:
        MappingError: If the country is not supported.
    """
    try:
        return COUNTRIES[name]
    except KeyError:
        raise MappingError(f"Unsupported country: {name!r}") from None


def cities_for(country_name: str) -> Tuple[str, ...]:
    """Returns the city list of a country, or an empty tuple for unknown countries."""
    country = COUNTRIES.get(country_name)
    return country.cities if country else ()


def get_payment_method(method_id: str) -> PaymentMethodOption:
    try:
        return PAYMENT_METHODS[method_id]
    except KeyError:
        raise MappingError(f"Unknown payment method: {method_id!r}") from None


def map_payment_method(method_id: str) -> str:
    """
    Maps a wizard payment method identifier to the processor's code.

    Args:
        method_id (str): Identifier from PAYMENT_METHODS (e.g. 'mpesa').
    Returns:
        str: Processor code ('mobile' or 'card').
    Raises:
        MappingError: If the identifier has no processor code.
    """
    try:
        return PAYMENT_METHOD_CODES[method_id]
    except KeyError:
        raise MappingError(f"No processor code for payment method {method_id!r}") from None


def map_delivery_method(delivery_method: str) -> str:
    """
    Maps a wizard delivery choice to the processor's code.

    Raises:
        MappingError: If the choice has no processor code.
    """
    try:
        return DELIVERY_METHOD_CODES[delivery_method]
    except KeyError:
        raise MappingError(f"No processor code for delivery method {delivery_method!r}") from None


def normalize_phone_number(phone: str, country_name: str) -> str:
    """
    Normalizes a user-entered phone number to international format.

    Examples (Tanzania, dial code 255):
        "0712 345 678"   -> "+255712345678"
        "255712345678"   -> "+255712345678"
        "00255712345678" -> "+255712345678"
        "712-345-678"    -> "+255712345678"

    Raises:
        MappingError: If the country is not supported.
    """
    dial_code = get_country(country_name).dial_code
    cleaned = "".join(ch for ch in phone if ch not in " -().")

    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("00"):
        return "+" + cleaned[2:]
    if cleaned.startswith("0"):
        return f"+{dial_code}{cleaned[1:]}"
    if cleaned.startswith(dial_code):
        return "+" + cleaned
    return f"+{dial_code}{cleaned}"
