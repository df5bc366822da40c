"""Checkout orchestration for the multi-vendor marketplace."""
from .confirmation import ConfirmationView, NotFoundView, OrderConfirmationResolver
from .gateway import PaymentGatewayAdapter, SubmissionResult
from .session import CheckoutSession
from .store import InMemoryKeyValueStore, JsonFileKeyValueStore, OrderPersistenceStore

__all__ = [
    "CheckoutSession",
    "PaymentGatewayAdapter",
    "SubmissionResult",
    "OrderPersistenceStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "OrderConfirmationResolver",
    "ConfirmationView",
    "NotFoundView",
]
