"""
errors.py — Exception Taxonomy for Checkout Orchestration

Every failure in the checkout flow is raised as a subclass of `CheckoutError`.
Each exception carries two messages:
    • str(exc)        — the specific cause, written to the log
    • exc.user_message — the text the UI is allowed to show

Categories:
    - Validation errors: incomplete or malformed wizard fields, never sent to the processor
    - Mapping errors: unknown delivery/payment/currency codes, fatal to the attempt
    - Processor errors: success=false or transport failure, recoverable by retry
    - Persistence errors: local store failures
    - Resolution errors: the confirmation page cannot find its order
    - Start preconditions: login, verification and cart-selection gates
"""

from typing import Optional

GENERIC_PAYMENT_FAILURE = "Payment processing failed. Please try again or contact support."
GENERIC_MAPPING_FAILURE = "We could not process your order details. Please review your selections and try again."


class CheckoutError(Exception):
    """Base class for all checkout failures."""

    default_user_message = "Something went wrong during checkout."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or message or self.default_user_message


class CheckoutValidationError(CheckoutError):
    """Wizard fields are missing or invalid."""

    default_user_message = "Please complete all required fields."

    def __init__(self, message: str = "", fields=None):
        super().__init__(message)
        self.fields = list(fields or [])


class UnsupportedCurrencyError(CheckoutError):
    """A currency code outside the static rate table was used."""

    def __init__(self, currency_code: str):
        super().__init__(
            f"Unsupported currency: {currency_code!r}",
            user_message=GENERIC_MAPPING_FAILURE,
        )
        self.currency_code = currency_code


class MappingError(CheckoutError):
    """A UI choice has no backend code. The specific cause is only logged."""

    def __init__(self, message: str):
        super().__init__(message, user_message=GENERIC_MAPPING_FAILURE)


class ProcessorError(CheckoutError):
    """The payment processor declined the order or could not be reached."""

    default_user_message = GENERIC_PAYMENT_FAILURE


class PersistenceError(CheckoutError):
    """The order store could not be read or written."""

    default_user_message = "We could not save your order details."


class SubmissionInFlightError(CheckoutError):
    default_user_message = "Your order is already being processed."


class SubmissionCancelledError(CheckoutError):
    default_user_message = "Payment submission was cancelled before it completed."


class InvalidTransitionError(CheckoutError):
    """A state transition was requested from a state that does not allow it."""


class OrderNotFoundError(CheckoutError):
    """Terminal resolution failure for the confirmation page."""

    def __init__(self, order_id, reason):
        super().__init__(f"Order {order_id!r} could not be resolved: {reason.name}", user_message=reason.value)
        self.order_id = order_id
        self.reason = reason


# --- Start preconditions ---

class CheckoutRedirect(CheckoutError):
    """The checkout cannot start and the caller must send the user elsewhere."""

    def __init__(self, message: str, redirect_to: str):
        super().__init__(message)
        self.redirect_to = redirect_to


class LoginRequiredError(CheckoutRedirect):
    pass


class EmptyCartError(CheckoutRedirect):
    pass


class SelectionRequiredError(CheckoutRedirect):
    pass


class VerificationRequiredError(CheckoutError):
    """The verification gate refused the requested action."""

    def __init__(self, action: str):
        super().__init__(
            f"Verification required for action {action!r}",
            user_message="Please verify your account before making a purchase.",
        )
        self.action = action
