"""
confirmation.py — Order Confirmation Resolver

Builds the read-only view of a placed order from the locally persisted snapshot.
One resolver serves every confirmation layout; the layout is chosen from the
snapshot itself (one seller vs. several sellers) instead of from separate pages.

Resolution either yields a complete `ConfirmationView` or a terminal
`NotFoundView` with recovery actions. A partially populated confirmation is never
produced.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from .collaborators import Cart
from .currency import format_price
from .errors import OrderNotFoundError, PersistenceError
from .models import LineItem, OrderSnapshot, SellerContact
from .navigation import HOME_ROUTE, ORDER_HISTORY_ROUTE
from .store import OrderPersistenceStore

log = logging.getLogger(__name__)

# Items listed under this seller name are shown under every seller block.
PLACEHOLDER_SELLER_NAME = "Verified Seller"

NOT_LISTED = "Not Listed"
NOT_AVAILABLE = "N/A"
UNKNOWN_SELLER = "Unknown Seller"
DEFAULT_CONTACT_TIME = "within 24 hours"

ARRANGED_DELIVERY_GUIDANCE = (
    "Order created. Seller notified. Our team will handle payment and delivery arrangements."
)
ARRANGE_WITH_SELLER_GUIDANCE = (
    "Order created. Seller notified. Contact the seller to arrange meeting and payment."
)


class ConfirmationLayout(str, Enum):
    SINGLE_SELLER = "single_seller"
    MULTI_SELLER = "multi_seller"


@dataclass(frozen=True)
class ContactBlock:
    name: str
    phone: str
    email: str
    address: str


@dataclass(frozen=True)
class SellerGroup:
    contact: ContactBlock
    items: Tuple[LineItem, ...]

    @property
    def item_count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class RecoveryAction:
    label: str
    href: str


@dataclass(frozen=True)
class ConfirmationView:
    order_id: str
    short_order_number: str
    status_label: str
    date: str
    estimated_delivery: str
    total_display: str
    payment_method: str
    shipping_name: str
    shipping_address: str
    shipping_city: str
    shipping_country: str
    delivery_method: str
    layout: ConfirmationLayout
    guidance: Tuple[str, ...]
    seller_groups: Tuple[SellerGroup, ...]
    unmatched_items: Tuple[LineItem, ...]
    items: Tuple[LineItem, ...]
    degraded: bool = False


@dataclass(frozen=True)
class NotFoundView:
    message: str
    order_id: Optional[str] = None
    actions: Tuple[RecoveryAction, ...] = (
        RecoveryAction("View All Orders", ORDER_HISTORY_ROUTE),
        RecoveryAction("Back to Home", HOME_ROUTE),
    )


def seller_matches(item: LineItem, seller: SellerContact) -> bool:
    """
    Heuristic ownership test: display-name equality, plus the placeholder name that
    matches every seller. Names are not unique identifiers, so this can misattribute
    items of two sellers sharing a name.
    """
    return item.seller.name == seller.name or item.seller.name == PLACEHOLDER_SELLER_NAME


def match_items_to_sellers(items: List[LineItem], sellers: List[SellerContact]
                           ) -> Tuple[List[Tuple[SellerContact, List[LineItem]]], List[LineItem]]:
    """
    Groups items under the seller blocks they match.

    Returns:
        tuple: ([(seller, matched items), ...] in seller order, items matching no seller).
            Unmatched items are kept, never dropped.
    """
    groups = [(seller, [item for item in items if seller_matches(item, seller)]) for seller in sellers]
    unmatched = [item for item in items if not any(seller_matches(item, seller) for seller in sellers)]
    return groups, unmatched


def contact_block(seller: Optional[SellerContact]) -> ContactBlock:
    seller = seller or SellerContact()
    address = seller.address if seller.address and seller.address != NOT_LISTED else NOT_LISTED
    return ContactBlock(
        name=seller.name or UNKNOWN_SELLER,
        phone=seller.phone or NOT_LISTED,
        email=seller.email or NOT_AVAILABLE,
        address=address,
    )


def delivery_guidance(snapshot: OrderSnapshot) -> Tuple[str, ...]:
    if snapshot.shippingMethod == "delivery":
        contact_time = snapshot.expectedContactTime or DEFAULT_CONTACT_TIME
        return (
            ARRANGED_DELIVERY_GUIDANCE,
            f"Expected contact: {contact_time}. Keep your phone accessible.",
        )
    return (ARRANGE_WITH_SELLER_GUIDANCE,)


def short_order_number(order_id: str) -> str:
    _, sep, rest = order_id.partition("-")
    return rest if sep and rest else order_id


def build_view(snapshot: OrderSnapshot, degraded: bool = False) -> ConfirmationView:
    """Turns a snapshot into its confirmation view."""
    items = list(snapshot.items)
    if snapshot.sellers:
        layout = ConfirmationLayout.MULTI_SELLER
        matched, unmatched = match_items_to_sellers(items, snapshot.sellers)
        groups = tuple(SellerGroup(contact_block(seller), tuple(group)) for seller, group in matched)
    else:
        layout = ConfirmationLayout.SINGLE_SELLER
        unmatched = []
        groups = (SellerGroup(contact_block(snapshot.sellerDetails), tuple(items)),)

    address = snapshot.shippingAddress
    return ConfirmationView(
        order_id=snapshot.id,
        short_order_number=short_order_number(snapshot.id),
        status_label=snapshot.status[:1].upper() + snapshot.status[1:],
        date=snapshot.date.isoformat(),
        estimated_delivery=snapshot.estimatedDelivery,
        total_display=format_price(snapshot.total, snapshot.currency),
        payment_method=snapshot.paymentMethod,
        shipping_name=address.name,
        shipping_address=address.address,
        shipping_city=address.city,
        shipping_country=address.country,
        delivery_method=snapshot.shippingMethod,
        layout=layout,
        guidance=delivery_guidance(snapshot),
        seller_groups=groups,
        unmatched_items=tuple(unmatched),
        items=tuple(items),
        degraded=degraded,
    )


class OrderConfirmationResolver:
    """
    Resolves an order id from the confirmation route into a view.

    Args:
        store (OrderPersistenceStore): Source of snapshots. Only read, never written,
            apart from consuming the one-shot clear-cart flag.
        cart (Cart): Cleared when a pending clear-cart flag is consumed.
    """

    def __init__(self, store: OrderPersistenceStore, cart: Optional[Cart] = None):
        self.store = store
        self.cart = cart

    def resolve(self, order_id: Optional[str]) -> Union[ConfirmationView, NotFoundView]:
        try:
            loaded = self.store.load(order_id)
        except OrderNotFoundError as e:
            log.info(f"[Order: {order_id}] Confirmation unavailable: {e.reason.name}")
            return NotFoundView(message=e.user_message, order_id=order_id)

        view = build_view(loaded.snapshot, degraded=loaded.degraded)

        try:
            should_clear = self.store.consume_clear_cart_flag()
        except PersistenceError as e:
            log.error(f"[Order: {view.order_id}] Could not read clear-cart flag: {e}")
            should_clear = False
        if should_clear and self.cart is not None:
            self.cart.clear()
            log.info(f"[Order: {view.order_id}] Cart cleared after order.")
        return view
