"""Shared test fixtures."""
from datetime import datetime, timezone

import httpx
import pytest

from checkout_service.clients import PaymentProcessorClient
from checkout_service.collaborators import InMemoryCart, StaticAuth, User, UserVerificationGate
from checkout_service.gateway import PaymentGatewayAdapter
from checkout_service.models import CartItem, CheckoutState, LineItem, OrderSnapshot, SellerContact, ShippingSummary
from checkout_service.navigation import RecordingNavigator
from checkout_service.session import CheckoutSession
from checkout_service.store import InMemoryKeyValueStore, OrderPersistenceStore
from mock_services.mock_payment_processor import app as mock_processor_app


async def _no_sleep(_seconds):
    return None


@pytest.fixture
def buyer():
    return User(name="Amina Mushi", email="amina@example.com", phone="0712 345 678", token="tok_amina")


@pytest.fixture
def auth(buyer):
    return StaticAuth(buyer)


@pytest.fixture
def verification(auth):
    return UserVerificationGate(auth)


@pytest.fixture
def seller_kilimanjaro():
    return SellerContact(name="Kilimanjaro Crafts", email="shop@kili.example", phone="+255700111222",
                         address="Moshi Road 4")


@pytest.fixture
def cart(seller_kilimanjaro):
    return InMemoryCart([
        CartItem(productId="p-1", title="Carved Giraffe", price=45000, quantity=2,
                 seller=seller_kilimanjaro, selected=True),
        CartItem(productId="p-2", title="Kitenge Fabric", price=30000, quantity=1,
                 seller=seller_kilimanjaro, selected=True),
        CartItem(productId="p-3", title="Camping Stove", price=80000, quantity=1,
                 seller=SellerContact(name="Expat Gear"), selected=False),
    ])


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return OrderPersistenceStore(kv)


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def session(cart, auth, verification, navigator):
    return CheckoutSession.start(cart, auth, verification, navigator=navigator)


def fill_shipping(session, country="Tanzania", city="Dar es Salaam"):
    session.update_shipping(
        firstName="Amina",
        lastName="Mushi",
        email="amina@example.com",
        phone="0712 345 678",
        address="Plot 12, Msasani Peninsula",
        country=country,
        city=city,
    )


def fill_mobile_payment(session, method="mpesa"):
    session.select_payment_method(method)
    session.update_payment_details(mobileNumber="0712345678")
    session.set_terms_accepted(True)


def to_review(session):
    fill_shipping(session)
    assert session.next_step()
    fill_mobile_payment(session)
    assert session.next_step()
    assert session.state is CheckoutState.REVIEW


@pytest.fixture
def review_session(session):
    to_review(session)
    return session


@pytest.fixture
def processor_client():
    """Processor client wired to the mock processor through an in-process ASGI transport."""
    transport = httpx.ASGITransport(app=mock_processor_app)
    return PaymentProcessorClient(base_url="http://processor.test", transport=transport)


def make_adapter(client, store, cart, navigator):
    return PaymentGatewayAdapter(client, store, cart, navigator, redirect_delay=0, sleep=_no_sleep)


@pytest.fixture
def adapter(processor_client, store, cart, navigator):
    return make_adapter(processor_client, store, cart, navigator)


def mock_transport(body, status_code=200, calls=None):
    """httpx.MockTransport answering every request with `body`."""
    def handler(request):
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, json=body)
    return httpx.MockTransport(handler)


def make_snapshot(order_id="ORD-1001", items=None, seller_details=None, sellers=None,
                  shipping_method="delivery", **overrides):
    """A stored-order record as the gateway writes it."""
    if items is None:
        items = [LineItem(productId="p-1", title="Carved Giraffe", price=45000, quantity=2,
                          seller=SellerContact(name="Kilimanjaro Crafts"))]
    fields = dict(
        id=order_id,
        date=datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
        estimatedDelivery="3-5 business days",
        total=sum(item.line_total for item in items),
        currency="TZS",
        paymentMethod="M-Pesa",
        shippingAddress=ShippingSummary(name="Amina Mushi", address="Plot 12, Msasani Peninsula",
                                        city="Dar es Salaam", country="Tanzania",
                                        phone="+255712345678", email="amina@example.com"),
        shippingMethod=shipping_method,
        items=items,
        sellerDetails=seller_details,
        sellers=sellers or [],
    )
    fields.update(overrides)
    return OrderSnapshot(**fields)
