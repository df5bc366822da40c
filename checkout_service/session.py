"""
session.py — Checkout Wizard State Machine

Holds everything the shopper enters during one checkout attempt and enforces the
wizard's transition rules:

    SHIPPING -> PAYMENT -> REVIEW -> SUBMITTING -> SUCCESS
                                             |-> FAILURE -> REVIEW (retry)

    • Forward moves require `validation.can_advance` for the current step; otherwise
      they are no-ops (the UI disables the button).
    • Backward moves are always allowed and keep every entered value.
    • REVIEW -> SUBMITTING happens once per submit; `in_flight` blocks re-entry.
    • FAILURE carries a user-displayable message and keeps all field data, so the
      shopper can go back to REVIEW and retry.

A session only starts for a signed-in, verified buyer with at least one cart item
selected for checkout.
"""

import asyncio
import logging
from decimal import Decimal
from typing import List, Optional

from . import catalog, validation
from .catalog import BASE_CURRENCY
from .collaborators import AuthProvider, Cart, User, VerificationGate
from .currency import exchange_rate, from_base, to_display
from .errors import (
    GENERIC_PAYMENT_FAILURE,
    CheckoutError,
    CheckoutValidationError,
    EmptyCartError,
    InvalidTransitionError,
    LoginRequiredError,
    SelectionRequiredError,
    SubmissionCancelledError,
    SubmissionInFlightError,
    VerificationRequiredError,
)
from .models import (
    CardPaymentDetails,
    CheckoutResponse,
    CheckoutState,
    LineItem,
    MobilePaymentDetails,
    PaymentDetails,
    PaymentSelection,
    PaymentType,
    ShippingAddress,
)
from .navigation import CART_ROUTE, Navigator, login_route, selection_required_route

log = logging.getLogger(__name__)

EDITABLE_STATES = (CheckoutState.SHIPPING, CheckoutState.PAYMENT, CheckoutState.REVIEW)
PROCESSING_MESSAGE = "Processing your order..."

_FORWARD = {
    CheckoutState.SHIPPING: CheckoutState.PAYMENT,
    CheckoutState.PAYMENT: CheckoutState.REVIEW,
}
_BACKWARD = {
    CheckoutState.PAYMENT: CheckoutState.SHIPPING,
    CheckoutState.REVIEW: CheckoutState.PAYMENT,
}


def _details_for(payment_type: PaymentType) -> PaymentDetails:
    if payment_type is PaymentType.CARD:
        return CardPaymentDetails()
    return MobilePaymentDetails()


def _check_city(city: str, country: str) -> None:
    if city and city not in catalog.cities_for(country):
        raise CheckoutValidationError(
            f"{city!r} is not a supported city in {country or 'the selected country'}",
            fields=["city"],
        )


class CheckoutSession:
    """
    In-memory state of one checkout attempt.

    Use `CheckoutSession.start` to create a session from the shared collaborators;
    the constructor skips the start preconditions and is meant for tests.
    """

    def __init__(self, items: List[LineItem], subtotal: int, user: Optional[User] = None,
                 display_currency: str = BASE_CURRENCY, navigator: Optional[Navigator] = None):
        exchange_rate(display_currency)  # unknown currencies fail here, never at submit time
        self.items: List[LineItem] = list(items)
        self.subtotal = subtotal
        self.user = user
        self.display_currency = display_currency
        self.navigator = navigator

        self.state = CheckoutState.SHIPPING
        self.shipping = ShippingAddress()
        self.delivery_method = "delivery"
        self.payment_selection: Optional[PaymentSelection] = None
        self.payment_details: Optional[PaymentDetails] = None
        self.terms_accepted = False

        self.error_message: Optional[str] = None
        self.status_message: Optional[str] = None
        self.result = None

        # Kept across retries so the processor can deduplicate, and so a payment that
        # was accepted but not persisted is saved on retry instead of charged again.
        self.idempotency_key: Optional[str] = None
        self.accepted_response: Optional[CheckoutResponse] = None

        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

        if user is not None:
            self._prefill(user)

    @classmethod
    def start(cls, cart: Cart, auth: AuthProvider, verification: VerificationGate,
              display_currency: str = BASE_CURRENCY, navigator: Optional[Navigator] = None) -> "CheckoutSession":
        """
        Creates a session from the selected cart items.

        Raises:
            LoginRequiredError: Nobody is signed in (redirect to login, returning to checkout).
            VerificationRequiredError: The verification gate refuses "buy".
            EmptyCartError: The cart has no items at all.
            SelectionRequiredError: The cart has items but none is selected for checkout.
            UnsupportedCurrencyError: The display currency is unknown.
        """
        user = auth.current_user
        if user is None:
            raise LoginRequiredError("Checkout requires a signed-in user", login_route())
        if not verification.check_verification("buy"):
            log.info("Checkout blocked by verification gate.")
            raise VerificationRequiredError("buy")
        if not cart.items:
            raise EmptyCartError("Cart is empty", CART_ROUTE)

        selected = cart.selected_items
        if not selected:
            raise SelectionRequiredError("No cart items selected for checkout", selection_required_route())

        session = cls(selected, cart.selected_subtotal, user, display_currency, navigator)
        log.info(f"Checkout started with {len(selected)} item(s), subtotal {session.subtotal} {BASE_CURRENCY}.")
        return session

    def _prefill(self, user: User) -> None:
        first, _, last = user.name.strip().partition(" ")
        self.shipping = self.shipping.model_copy(update={
            "firstName": first,
            "lastName": last.strip(),
            "email": user.email,
            "phone": user.phone,
        })

    # --- derived values ---

    @property
    def total(self) -> float:
        """Order total in the display currency, rounded for display."""
        return from_base(self.subtotal, self.display_currency)

    @property
    def display_total(self) -> Decimal:
        """Unrounded order total in the display currency; converts back to `subtotal` exactly."""
        return to_display(self.subtotal, self.display_currency)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def can_advance(self) -> bool:
        return validation.can_advance(self.state, self)

    @property
    def can_submit(self) -> bool:
        return self.state is CheckoutState.REVIEW and not self._in_flight and self.can_advance()

    # --- field updates ---

    def _require_editable(self) -> None:
        if self.state not in EDITABLE_STATES:
            raise InvalidTransitionError(f"Fields cannot be edited in state {self.state.value}")

    def set_country(self, country: str) -> None:
        self._require_editable()
        if country != self.shipping.country:
            self.shipping = self.shipping.model_copy(update={"country": country, "city": ""})

    def set_city(self, city: str) -> None:
        self._require_editable()
        _check_city(city, self.shipping.country)
        self.shipping = self.shipping.model_copy(update={"city": city})

    def update_shipping(self, **fields) -> None:
        """
        Updates shipping fields by name. A changed country clears the city before
        any city in the same call is applied.
        """
        self._require_editable()
        unknown = set(fields) - set(ShippingAddress.model_fields)
        if unknown:
            raise CheckoutValidationError(f"Unknown shipping fields: {', '.join(sorted(unknown))}", fields=unknown)

        country = fields.pop("country", None)
        city = fields.pop("city", None)
        if city is not None:
            # Checked against the resulting country before any field changes.
            _check_city(city, self.shipping.country if country is None else country)
        if fields:
            self.shipping = self.shipping.model_copy(update={k: str(v) for k, v in fields.items()})
        if country is not None:
            self.set_country(country)
        if city is not None:
            self.set_city(city)

    def set_delivery_method(self, delivery_method: str) -> None:
        self._require_editable()
        if delivery_method not in catalog.DELIVERY_METHODS:
            raise CheckoutValidationError(f"Unknown delivery method {delivery_method!r}", fields=["deliveryMethod"])
        self.delivery_method = delivery_method

    def select_payment_method(self, method_id: str) -> None:
        """
        Makes `method_id` the only active payment method. Details are reset when the
        method type changes and kept when switching between methods of the same type.
        """
        self._require_editable()
        if method_id not in catalog.PAYMENT_METHODS:
            raise CheckoutValidationError(f"Unknown payment method {method_id!r}", fields=["paymentMethod"])
        option = catalog.PAYMENT_METHODS[method_id]
        payment_type = PaymentType(option.type)

        self.payment_selection = PaymentSelection(methodId=method_id, type=payment_type)
        if self.payment_details is None or self.payment_details.kind != payment_type.value:
            self.payment_details = _details_for(payment_type)

    def update_payment_details(self, **fields) -> None:
        self._require_editable()
        if self.payment_selection is None or self.payment_details is None:
            raise CheckoutValidationError("Select a payment method first", fields=["paymentMethod"])
        allowed = set(type(self.payment_details).model_fields) - {"kind"}
        unknown = set(fields) - allowed
        if unknown:
            raise CheckoutValidationError(
                f"Fields not valid for {self.payment_selection.type.value} payments: {', '.join(sorted(unknown))}",
                fields=unknown,
            )
        self.payment_details = self.payment_details.model_copy(update={k: str(v) for k, v in fields.items()})

    def set_terms_accepted(self, accepted: bool) -> None:
        self._require_editable()
        self.terms_accepted = bool(accepted)

    # --- transitions ---

    def next_step(self) -> bool:
        """Moves forward if the current step is complete. Returns False for a no-op."""
        target = _FORWARD.get(self.state)
        if target is None or not self.can_advance():
            return False
        self.state = target
        return True

    def previous_step(self) -> bool:
        target = _BACKWARD.get(self.state)
        if target is None:
            return False
        self.state = target
        return True

    def dismiss_error(self) -> None:
        """Leaves FAILURE for REVIEW with every field unchanged."""
        if self.state is not CheckoutState.FAILURE:
            raise InvalidTransitionError(f"No failure to dismiss in state {self.state.value}")
        self.state = CheckoutState.REVIEW
        self.error_message = None

    def announce(self, message: str) -> None:
        self.status_message = message

    def _fail(self, message: str) -> None:
        self.state = CheckoutState.FAILURE
        self.error_message = message
        self.status_message = None

    async def submit(self, adapter):
        """
        Submits the order through `adapter` (a PaymentGatewayAdapter).

        Returns:
            SubmissionResult: On success. For direct confirmations the session also
                navigates to the confirmation route.
        Raises:
            SubmissionInFlightError: A submission is already running. No second
                request is sent.
            InvalidTransitionError: The session is not in REVIEW.
            CheckoutValidationError: Shipping or payment became incomplete; the
                session stays in REVIEW.
            SubmissionCancelledError: `cancel()` was called while the call was pending.
            CheckoutError: Any other failure; the session is in FAILURE with
                `error_message` set.
        """
        if self._in_flight:
            log.warning("Rejected submit: a submission is already in flight.")
            raise SubmissionInFlightError("Submission already in flight")
        if self.state is not CheckoutState.REVIEW:
            raise InvalidTransitionError(f"Cannot submit from state {self.state.value}")
        if not validation.can_advance(CheckoutState.REVIEW, self):
            self.error_message = "Please complete your shipping and payment details."
            raise CheckoutValidationError(self.error_message)

        self._in_flight = True
        self.state = CheckoutState.SUBMITTING
        self.error_message = None
        self.status_message = PROCESSING_MESSAGE
        self._task = asyncio.ensure_future(adapter.submit(self))
        try:
            result = await self._task
        except asyncio.CancelledError:
            self._fail(SubmissionCancelledError.default_user_message)
            if not self._cancel_requested:
                raise
            log.info("Checkout submission cancelled by the user.")
            raise SubmissionCancelledError("Submission cancelled") from None
        except CheckoutError as e:
            log.warning(f"Checkout submission failed: {e}")
            self._fail(e.user_message)
            raise
        except Exception:
            log.critical("Unexpected error during checkout submission", exc_info=True)
            self._fail(GENERIC_PAYMENT_FAILURE)
            raise
        finally:
            self._in_flight = False
            self._task = None
            self._cancel_requested = False

        self.state = CheckoutState.SUCCESS
        self.result = result
        self.idempotency_key = None
        self.accepted_response = None
        if result.confirmation_route and self.navigator is not None:
            self.navigator.navigate(result.confirmation_route)
        return result

    def cancel(self) -> bool:
        """
        Cancels a pending submission. Returns False if nothing is in flight.

        A snapshot that was already saved stays saved; cancelling only stops
        waiting for the remaining steps.
        """
        if self._task is None or self._task.done():
            return False
        self._cancel_requested = True
        self._task.cancel()
        return True
