"""
validation.py — Step Gating and Submission Checks

Pure predicates deciding whether a wizard step is complete enough to advance.
They are evaluated on every keystroke, so they never mutate the session and never
cache results.

`validate_payload` runs once more right before the processor call and raises
`CheckoutValidationError` for anything the step gates do not cover (e-mail format,
phone length, amount, terms).
"""

import re
from typing import List, Optional

from .catalog import cities_for
from .errors import CheckoutValidationError
from .models import (
    CardPaymentDetails,
    CheckoutPayload,
    CheckoutState,
    MobilePaymentDetails,
    PaymentDetails,
    PaymentSelection,
    PaymentType,
    ShippingAddress,
)

REQUIRED_SHIPPING_FIELDS = ("firstName", "lastName", "email", "phone", "address", "country", "city")
CARD_FIELDS = ("cardholderName", "cardNumber", "expiry", "cvv")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PHONE_DIGITS = 10


def _filled(value) -> bool:
    return isinstance(value, str) and value.strip() != ""


def missing_shipping_fields(shipping: ShippingAddress) -> List[str]:
    """Returns the required shipping fields that are still blank, in form order."""
    return [name for name in REQUIRED_SHIPPING_FIELDS if not _filled(getattr(shipping, name))]


def is_shipping_complete(shipping: ShippingAddress) -> bool:
    if missing_shipping_fields(shipping):
        return False
    return shipping.city in cities_for(shipping.country)


def is_payment_details_complete(selection: Optional[PaymentSelection], details: Optional[PaymentDetails]) -> bool:
    if selection is None or details is None:
        return False
    if selection.type is PaymentType.MOBILE:
        return isinstance(details, MobilePaymentDetails) and _filled(details.mobileNumber)
    if selection.type is PaymentType.CARD:
        return isinstance(details, CardPaymentDetails) and all(
            _filled(getattr(details, name)) for name in CARD_FIELDS
        )
    return False


def is_payment_complete(selection, details, terms_accepted: bool) -> bool:
    return bool(terms_accepted) and is_payment_details_complete(selection, details)


def can_advance(step, session) -> bool:
    """
    Decides whether the wizard may leave `step`.

    Args:
        step (CheckoutState | str): The step being left.
        session: Any object exposing `shipping`, `payment_selection`,
            `payment_details` and `terms_accepted`.
    Returns:
        bool: True if the step's fields are complete.

    Notes:
        - The review step has no fields of its own. It re-checks shipping and
          payment so that submission never starts from a stale wizard.
        - Submitting, success and failure are not wizard steps and never advance.
    """
    step = CheckoutState(step)
    if step is CheckoutState.SHIPPING:
        return is_shipping_complete(session.shipping)
    if step is CheckoutState.PAYMENT:
        return is_payment_complete(session.payment_selection, session.payment_details, session.terms_accepted)
    if step is CheckoutState.REVIEW:
        return is_shipping_complete(session.shipping) and is_payment_complete(
            session.payment_selection, session.payment_details, session.terms_accepted
        )
    return False


def validate_payload(payload: CheckoutPayload) -> None:
    """
    Final client-side check of an assembled payload.

    Raises:
        CheckoutValidationError: Listing every missing field, or the first
            format problem found.
    """
    required = ("firstName", "lastName", "emailAddress", "phoneNumber", "address",
                "city", "country", "paymentMethod", "currency")
    missing = [name for name in required if not _filled(getattr(payload, name))]
    if payload.totalAmount is None:
        missing.append("totalAmount")
    if missing:
        raise CheckoutValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    if not EMAIL_PATTERN.match(payload.emailAddress):
        raise CheckoutValidationError("Invalid email address format", fields=["emailAddress"])

    digits = sum(ch.isdigit() for ch in payload.phoneNumber)
    if digits < MIN_PHONE_DIGITS:
        raise CheckoutValidationError(
            f"Phone number must be at least {MIN_PHONE_DIGITS} digits", fields=["phoneNumber"]
        )

    if payload.totalAmount <= 0:
        raise CheckoutValidationError("Total amount must be greater than 0", fields=["totalAmount"])

    if not payload.agreeToTerms:
        raise CheckoutValidationError("You must agree to the terms and conditions", fields=["agreeToTerms"])
