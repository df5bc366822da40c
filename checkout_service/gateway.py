"""
gateway.py — Payment Gateway Adapter

Turns a completed checkout session into a processor request and handles the outcome.

Submission sequence:
    1. Build the CheckoutPayload (mapping tables, phone normalization, base-currency amount)
    2. Send it to the payment processor (one network call)
    3. On success, persist the OrderSnapshot
    4. Only then leave the page:
         - Hosted redirect (`paymentUrl` present): flag the cart for clearing, show a
           status message, wait briefly, redirect to the payment page.
         - Direct confirmation: clear the purchased cart items and hand the
           confirmation route back to the caller.

Step 3 always completes before step 4. After a hosted redirect the browser's
in-memory state is gone and there is no server-side order the client could fetch,
so the snapshot is the only way back to the order.
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from . import catalog
from .clients import PaymentProcessorClient
from .collaborators import Cart
from .currency import to_base
from .errors import GENERIC_PAYMENT_FAILURE, MappingError, ProcessorError, UnsupportedCurrencyError
from .models import (
    CheckoutPayload,
    CheckoutResponse,
    LineItem,
    OrderSnapshot,
    SellerContact,
    ShippingSummary,
)
from .navigation import Navigator, confirmation_route
from .store import OrderPersistenceStore
from .validation import validate_payload

REDIRECT_DELAY_SECONDS = float(os.environ.get("REDIRECT_DELAY_SECONDS", "1.5"))
REDIRECT_STATUS_MESSAGE = "Redirecting to secure payment page..."

ESTIMATED_DELIVERY = {
    "delivery": "3-5 business days",
    "pickup": "Arranged with seller",
}

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    order_id: str
    response: CheckoutResponse
    snapshot: OrderSnapshot
    redirect_url: Optional[str] = None
    confirmation_route: Optional[str] = None

    @property
    def is_hosted_redirect(self) -> bool:
        return self.redirect_url is not None


def collect_sellers(items: List[LineItem]) -> List[SellerContact]:
    """Distinct sellers of the given items, in order of first appearance."""
    sellers: List[SellerContact] = []
    seen = set()
    for item in items:
        if item.seller.name and item.seller.name not in seen:
            seen.add(item.seller.name)
            sellers.append(item.seller)
    return sellers


def build_order_snapshot(order_id: str, session, payload: CheckoutPayload,
                         response: CheckoutResponse, now: Optional[datetime] = None) -> OrderSnapshot:
    """
    Denormalizes the session into the record the confirmation page reads.

    A single seller is stored as `sellerDetails`, several sellers as `sellers`.
    """
    shipping = session.shipping
    sellers = collect_sellers(session.items)
    method = catalog.get_payment_method(session.payment_selection.methodId)

    return OrderSnapshot(
        id=order_id,
        status="pending" if response.paymentUrl else "confirmed",
        date=now or datetime.now(timezone.utc),
        estimatedDelivery=ESTIMATED_DELIVERY.get(session.delivery_method, ""),
        total=payload.totalAmount,
        currency=payload.currency,
        paymentMethod=method.label,
        shippingAddress=ShippingSummary(
            name=f"{shipping.firstName} {shipping.lastName}".strip(),
            address=shipping.address,
            city=shipping.city,
            country=shipping.country,
            phone=payload.phoneNumber,
            email=shipping.email,
        ),
        shippingMethod=session.delivery_method,
        transactionId=response.transactionId,
        items=list(session.items),
        sellerDetails=sellers[0] if len(sellers) == 1 else None,
        sellers=sellers if len(sellers) > 1 else [],
    )


class PaymentGatewayAdapter:
    """
    Submits checkout sessions to the payment processor.

    Args:
        client (PaymentProcessorClient): Outbound HTTP client.
        store (OrderPersistenceStore): Where snapshots are written.
        cart (Cart): Shared cart; purchased items are cleared after persistence.
        navigator (Navigator): Performs the hosted redirect.
        redirect_delay (float): Seconds to wait before a hosted redirect.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(self, client: PaymentProcessorClient, store: OrderPersistenceStore, cart: Cart,
                 navigator: Navigator, redirect_delay: float = REDIRECT_DELAY_SECONDS,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.client = client
        self.store = store
        self.cart = cart
        self.navigator = navigator
        self.redirect_delay = redirect_delay
        self._sleep = sleep

    def build_payload(self, session) -> CheckoutPayload:
        """
        Assembles the processor request from a session.

        Raises:
            MappingError: For delivery/payment/country values without a processor code.
                The specific cause is logged; the user only sees a generic message.
            UnsupportedCurrencyError: If the display currency has no exchange rate.
            CheckoutValidationError: If the assembled payload fails the final checks.
        """
        shipping = session.shipping
        try:
            if session.payment_selection is None:
                raise MappingError("No payment method selected")
            delivery_code = catalog.map_delivery_method(session.delivery_method)
            payment_code = catalog.map_payment_method(session.payment_selection.methodId)
            phone = catalog.normalize_phone_number(shipping.phone, shipping.country)
            amount = to_base(session.display_total, session.display_currency)
            if amount != session.subtotal:
                raise MappingError(
                    f"Converted amount {amount} {catalog.BASE_CURRENCY} does not match subtotal {session.subtotal}"
                )
        except (MappingError, UnsupportedCurrencyError) as e:
            log.error(f"Checkout aborted, mapping failed: {e}")
            raise

        payload = CheckoutPayload(
            firstName=shipping.firstName.strip(),
            lastName=shipping.lastName.strip(),
            emailAddress=shipping.email.strip(),
            phoneNumber=phone,
            address=shipping.address.strip(),
            city=shipping.city,
            country=shipping.country,
            deliveryInstructions=shipping.deliveryInstructions.strip(),
            deliveryMethod=delivery_code,
            paymentMethod=payment_code,
            agreeToTerms=session.terms_accepted,
            totalAmount=amount,
            currency=catalog.BASE_CURRENCY,
        )
        validate_payload(payload)
        return payload

    def _resolve_order_id(self, response: CheckoutResponse) -> str:
        if response.orderId:
            return response.orderId
        if response.transactionId:
            log.warning(f"Processor returned no orderId, using transactionId {response.transactionId}.")
            return response.transactionId
        order_id = f"ORD-{uuid.uuid4().hex[:12].upper()}"
        log.warning(f"Processor returned neither orderId nor transactionId, generated {order_id}.")
        return order_id

    async def _charge(self, session, payload: CheckoutPayload) -> CheckoutResponse:
        # One key per checkout attempt: reused after timeouts and transport errors,
        # replaced after an explicit decline so corrected details are charged anew.
        if not session.idempotency_key:
            session.idempotency_key = str(uuid.uuid4())
        token = session.user.token if session.user else ""

        log.info(f"Submitting checkout (amount={payload.totalAmount} {payload.currency}, "
                 f"method={payload.paymentMethod}, key={session.idempotency_key}).")
        response = await self.client.create_checkout(payload, token=token, idempotency_key=session.idempotency_key)

        if not response.success:
            session.idempotency_key = None
            message = response.error or response.message or GENERIC_PAYMENT_FAILURE
            log.warning(f"Processor rejected checkout: {message}")
            raise ProcessorError(f"Processor rejected checkout: {message}", user_message=message)
        return response

    async def submit(self, session) -> SubmissionResult:
        """
        Sends one checkout attempt to the processor and persists the outcome.

        If an earlier attempt of the same session was accepted by the processor but
        could not be persisted, the accepted response is persisted again instead of
        sending a second charge.

        Args:
            session (CheckoutSession): A session in the submitting state.
        Returns:
            SubmissionResult: Order id, snapshot and where the user goes next.
        Raises:
            ProcessorError: `success: false` or a failed call, carrying the processor's
                message or the generic fallback.
            PersistenceError: The payment went through but the snapshot could not be
                saved. No navigation happens in that case.
            MappingError, CheckoutValidationError: The payload could not be built.
        """
        payload = self.build_payload(session)
        response = session.accepted_response
        if response is None:
            response = await self._charge(session, payload)
            # Pin the resolved id so a retry re-persists under the same key.
            response = response.model_copy(update={"orderId": self._resolve_order_id(response)})
            session.accepted_response = response
            log.info(f"[Order: {response.orderId}] Payment accepted (TxID: {response.transactionId}).")
        else:
            log.warning(f"[Order: {response.orderId}] Payment already accepted, persisting without a new charge.")

        order_id = response.orderId
        log_prefix = f"[Order: {order_id}]"

        snapshot = build_order_snapshot(order_id, session, payload, response)
        snapshot = self.store.save(order_id, snapshot)

        if response.paymentUrl:
            self.store.mark_clear_cart()
            session.announce(REDIRECT_STATUS_MESSAGE)
            log.info(f"{log_prefix} Redirecting to hosted payment page in {self.redirect_delay}s.")
            await self._sleep(self.redirect_delay)
            self.navigator.redirect(response.paymentUrl)
            return SubmissionResult(order_id, response, snapshot, redirect_url=response.paymentUrl)

        self.cart.clear()
        log.info(f"{log_prefix} Direct confirmation, cart cleared.")
        return SubmissionResult(order_id, response, snapshot, confirmation_route=confirmation_route(order_id))
