"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the REST API the marketplace front end drives the checkout
wizard with. It owns one checkout session per process (one active shopper tab)
and delegates all rules to CheckoutSession, PaymentGatewayAdapter and
OrderConfirmationResolver.

Responsibilities:
    • Start the wizard from the shared cart and enforce login/verification/selection gates
    • Accept field updates and step transitions
    • Submit the order and tell the browser where to go next
    • Render the confirmation view for `/checkout/success?orderId=...`
    • Provide system health information
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from .catalog import BASE_CURRENCY
from .clients import PaymentProcessorClient
from .collaborators import InMemoryCart, StaticAuth, UserVerificationGate
from .confirmation import NotFoundView, OrderConfirmationResolver
from .errors import (
    CheckoutError,
    CheckoutRedirect,
    CheckoutValidationError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProcessorError,
    SubmissionCancelledError,
    SubmissionInFlightError,
    UnsupportedCurrencyError,
    VerificationRequiredError,
)
from .gateway import REDIRECT_DELAY_SECONDS, PaymentGatewayAdapter
from .logging_config import get_logger, setup_logging
from .models import CheckoutState
from .navigation import RecordingNavigator
from .session import CheckoutSession
from .store import JsonFileKeyValueStore, OrderPersistenceStore
from .validation import missing_shipping_fields

log = get_logger(__name__)


class CheckoutContext:
    """Collaborators and the single active session shared by all requests."""

    def __init__(self, cart, auth, verification, store: OrderPersistenceStore,
                 client: PaymentProcessorClient, navigator: Optional[RecordingNavigator] = None,
                 redirect_delay: float = REDIRECT_DELAY_SECONDS):
        self.cart = cart
        self.auth = auth
        self.verification = verification
        self.store = store
        self.client = client
        self.navigator = navigator or RecordingNavigator()
        self.adapter = PaymentGatewayAdapter(client, store, cart, self.navigator, redirect_delay=redirect_delay)
        self.resolver = OrderConfirmationResolver(store, cart)
        self.session: Optional[CheckoutSession] = None


def default_context() -> CheckoutContext:
    auth = StaticAuth()
    return CheckoutContext(
        cart=InMemoryCart(),
        auth=auth,
        verification=UserVerificationGate(auth),
        store=OrderPersistenceStore(JsonFileKeyValueStore()),
        client=PaymentProcessorClient(),
    )


# --- Request bodies ---

class ShippingUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    deliveryInstructions: Optional[str] = None


class PaymentUpdate(BaseModel):
    methodId: Optional[str] = None
    details: Dict[str, str] = {}
    agreeToTerms: Optional[bool] = None
    deliveryMethod: Optional[str] = None


def session_view(session: CheckoutSession) -> dict:
    """Everything the wizard needs to render the current step."""
    return {
        "state": session.state.value,
        "inFlight": session.in_flight,
        "canAdvance": session.can_advance(),
        "canSubmit": session.can_submit,
        "shipping": session.shipping.model_dump(),
        "missingShippingFields": missing_shipping_fields(session.shipping),
        "deliveryMethod": session.delivery_method,
        "paymentSelection": session.payment_selection.model_dump() if session.payment_selection else None,
        "paymentDetails": session.payment_details.model_dump() if session.payment_details else None,
        "agreeToTerms": session.terms_accepted,
        "items": [item.model_dump() for item in session.items],
        "subtotal": session.subtotal,
        "total": session.total,
        "currency": session.display_currency,
        "error": session.error_message,
        "status": session.status_message,
    }


# --- Dependencies ---

def get_context(request: Request) -> CheckoutContext:
    return request.app.state.context


def get_session(context: CheckoutContext = Depends(get_context)) -> CheckoutSession:
    if context.session is None:
        raise InvalidTransitionError("No active checkout session")
    return context.session


router = APIRouter()


@router.get("/checkout")
def open_checkout(currency: str = BASE_CURRENCY, context: CheckoutContext = Depends(get_context)):
    """
    Returns the active session, starting a new one from the cart when there is none
    or the previous one completed.

    Responses:
        307: Redirect to login or to the cart (selection required).
        403: Verification required for buying.
    """
    session = context.session
    if session is None or session.state is CheckoutState.SUCCESS:
        session = CheckoutSession.start(context.cart, context.auth, context.verification,
                                        display_currency=currency, navigator=context.navigator)
        context.session = session
    return session_view(session)


@router.put("/checkout/shipping")
def update_shipping(update: ShippingUpdate, session: CheckoutSession = Depends(get_session)):
    session.update_shipping(**update.model_dump(exclude_none=True))
    return session_view(session)


@router.put("/checkout/payment")
def update_payment(update: PaymentUpdate, session: CheckoutSession = Depends(get_session)):
    if update.deliveryMethod is not None:
        session.set_delivery_method(update.deliveryMethod)
    if update.methodId is not None:
        session.select_payment_method(update.methodId)
    if update.details:
        session.update_payment_details(**update.details)
    if update.agreeToTerms is not None:
        session.set_terms_accepted(update.agreeToTerms)
    return session_view(session)


@router.post("/checkout/next")
def next_step(session: CheckoutSession = Depends(get_session)):
    advanced = session.next_step()
    return {"advanced": advanced, **session_view(session)}


@router.post("/checkout/back")
def previous_step(session: CheckoutSession = Depends(get_session)):
    moved = session.previous_step()
    return {"moved": moved, **session_view(session)}


@router.post("/checkout/submit")
async def submit_order(context: CheckoutContext = Depends(get_context),
                       session: CheckoutSession = Depends(get_session)):
    """
    Submits the order. On success the response tells the browser either to perform a
    full redirect to the hosted payment page or to open the confirmation route.
    """
    result = await session.submit(context.adapter)
    log.info(f"[Order: {result.order_id}] Checkout completed via API.")
    return {
        "orderId": result.order_id,
        "redirectUrl": result.redirect_url,
        "confirmationUrl": result.confirmation_route,
        "statusMessage": session.status_message,
        "state": session.state.value,
    }


@router.post("/checkout/cancel")
def cancel_submission(session: CheckoutSession = Depends(get_session)):
    return {"cancelled": session.cancel(), **session_view(session)}


@router.post("/checkout/dismiss-error")
def dismiss_error(session: CheckoutSession = Depends(get_session)):
    session.dismiss_error()
    return session_view(session)


@router.get("/checkout/success")
def order_confirmation(orderId: Optional[str] = None, context: CheckoutContext = Depends(get_context)):
    """
    Renders the confirmation of a placed order from the local snapshot.

    Responses:
        200: ConfirmationView
        404: NotFoundView with recovery actions (missing id, unknown or expired order)
    """
    view = context.resolver.resolve(orderId)
    if isinstance(view, NotFoundView):
        return JSONResponse(status_code=404, content=jsonable_encoder(view))
    return jsonable_encoder(view)


@router.get("/health")
def health_check():
    """
    Simple health check endpoint for monitoring systems and container orchestrators.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


# --- Error translation ---

def _error_body(exc: CheckoutError, request: Request) -> dict:
    context = request.app.state.context
    body = {"message": exc.user_message}
    if context is not None and context.session is not None:
        body["state"] = context.session.state.value
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutRedirect)
    async def handle_redirect(request: Request, exc: CheckoutRedirect):
        log.info(f"Checkout redirect to {exc.redirect_to}: {exc}")
        return RedirectResponse(exc.redirect_to, status_code=307)

    @app.exception_handler(VerificationRequiredError)
    async def handle_verification(request: Request, exc: VerificationRequiredError):
        return JSONResponse(status_code=403, content={
            "verificationRequired": True, "action": exc.action, "message": exc.user_message,
        })

    @app.exception_handler(CheckoutValidationError)
    async def handle_validation(request: Request, exc: CheckoutValidationError):
        return JSONResponse(status_code=422, content={**_error_body(exc, request), "fields": exc.fields})

    @app.exception_handler(CheckoutError)
    async def handle_checkout_error(request: Request, exc: CheckoutError):
        if isinstance(exc, (SubmissionInFlightError, InvalidTransitionError, SubmissionCancelledError)):
            status = 409
        elif isinstance(exc, ProcessorError):
            status = 402
        elif isinstance(exc, UnsupportedCurrencyError):
            status = 400
        elif isinstance(exc, OrderNotFoundError):
            status = 404
        else:
            status = 500
        if status == 500:
            log.error(f"Checkout failed: {exc}")
        return JSONResponse(status_code=status, content=_error_body(exc, request))


def create_app(context: Optional[CheckoutContext] = None) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        context (CheckoutContext): Collaborators to use. When omitted, the default
            context (JSON file store, real processor client) is built on startup.
    """
    app = FastAPI(title="Marketplace Checkout Service")
    app.state.context = context
    app.include_router(router)
    register_error_handlers(app)

    @app.on_event("startup")
    def on_startup():
        if app.state.context is None:
            app.state.context = default_context()
        log.info("Checkout service started.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.context.client.aclose()
        log.info("Checkout service stopped.")

    return app


# Initialization
setup_logging()
app = create_app()
