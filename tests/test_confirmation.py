"""Tests for the order confirmation view."""
import pytest

from checkout_service.collaborators import InMemoryCart
from checkout_service.confirmation import (
    ARRANGE_WITH_SELLER_GUIDANCE,
    ARRANGED_DELIVERY_GUIDANCE,
    ConfirmationLayout,
    ConfirmationView,
    NotFoundView,
    OrderConfirmationResolver,
    build_view,
    contact_block,
    match_items_to_sellers,
    seller_matches,
    short_order_number,
)
from checkout_service.models import CartItem, LineItem, SellerContact
from checkout_service.store import LAST_ORDER_KEY

from conftest import make_snapshot


def item(product_id, seller_name, price=10000, quantity=1):
    return LineItem(productId=product_id, title=f"Item {product_id}", price=price, quantity=quantity,
                    seller=SellerContact(name=seller_name))


@pytest.fixture
def three_sellers():
    return [
        SellerContact(name="Kilimanjaro Crafts", email="shop@kili.example", phone="+255700111222",
                      address="Moshi Road 4"),
        SellerContact(name="Zanzibar Spices", phone="+255777000111"),
        SellerContact(name="Arusha Leather"),
    ]


@pytest.fixture
def resolver(store):
    return OrderConfirmationResolver(store, InMemoryCart())


class TestSellerMatching:
    def test_matches_by_display_name(self):
        assert seller_matches(item("a", "Zanzibar Spices"), SellerContact(name="Zanzibar Spices"))
        assert not seller_matches(item("a", "Zanzibar Spices"), SellerContact(name="Arusha Leather"))

    def test_placeholder_name_matches_every_seller(self, three_sellers):
        placeholder = item("a", "Verified Seller")
        assert all(seller_matches(placeholder, seller) for seller in three_sellers)

    def test_unmatched_items_are_kept(self, three_sellers):
        items = [
            item("a", "Kilimanjaro Crafts"),
            item("b", "Zanzibar Spices"),
            item("c", "Arusha Leather"),
            item("d", "Dodoma Pottery"),
            item("e", ""),
        ]
        groups, unmatched = match_items_to_sellers(items, three_sellers)

        assert [[i.productId for i in group] for _, group in groups] == [["a"], ["b"], ["c"]]
        assert [i.productId for i in unmatched] == ["d", "e"]


class TestContactBlock:
    def test_complete_contact(self, three_sellers):
        block = contact_block(three_sellers[0])
        assert (block.name, block.phone, block.email, block.address) == (
            "Kilimanjaro Crafts", "+255700111222", "shop@kili.example", "Moshi Road 4")

    def test_placeholders_for_missing_fields(self, three_sellers):
        block = contact_block(three_sellers[2])
        assert block.phone == "Not Listed"
        assert block.address == "Not Listed"
        assert block.email == "N/A"

    def test_missing_seller(self):
        assert contact_block(None).name == "Unknown Seller"


class TestBuildView:
    def test_multi_seller_layout_with_unmatched_bucket(self, three_sellers):
        items = [
            item("a", "Kilimanjaro Crafts", price=45000, quantity=2),
            item("b", "Zanzibar Spices"),
            item("c", "Arusha Leather"),
            item("d", "Dodoma Pottery"),
            item("e", "Moshi Coffee"),
        ]
        view = build_view(make_snapshot(items=items, sellers=three_sellers))

        assert view.layout is ConfirmationLayout.MULTI_SELLER
        assert [group.contact.name for group in view.seller_groups] == [
            "Kilimanjaro Crafts", "Zanzibar Spices", "Arusha Leather"]
        assert [group.item_count for group in view.seller_groups] == [1, 1, 1]
        assert [i.productId for i in view.unmatched_items] == ["d", "e"]
        assert len(view.items) == 5
        assert view.total_display == "TZS 130,000"

    def test_single_seller_layout(self, three_sellers):
        view = build_view(make_snapshot(seller_details=three_sellers[0]))

        assert view.layout is ConfirmationLayout.SINGLE_SELLER
        assert len(view.seller_groups) == 1
        assert view.seller_groups[0].contact.email == "shop@kili.example"
        assert view.unmatched_items == ()

    def test_delivery_guidance(self):
        view = build_view(make_snapshot(shipping_method="delivery"))
        assert view.guidance[0] == ARRANGED_DELIVERY_GUIDANCE
        assert "within 24 hours" in view.guidance[1]

    def test_pickup_guidance(self):
        view = build_view(make_snapshot(shipping_method="pickup"))
        assert view.guidance == (ARRANGE_WITH_SELLER_GUIDANCE,)

    def test_header_fields(self):
        view = build_view(make_snapshot(order_id="ORD-1001", status="pending"))
        assert view.short_order_number == "1001"
        assert view.status_label == "Pending"
        assert view.shipping_name == "Amina Mushi"
        assert view.payment_method == "M-Pesa"

    @pytest.mark.parametrize("order_id, expected", [
        ("ORD-1001", "1001"),
        ("tr_99", "tr_99"),
        ("ORD-", "ORD-"),
    ])
    def test_short_order_number(self, order_id, expected):
        assert short_order_number(order_id) == expected


class TestResolver:
    def test_resolves_saved_order(self, store, resolver):
        store.save("ORD-1001", make_snapshot())
        view = resolver.resolve("ORD-1001")

        assert isinstance(view, ConfirmationView)
        assert view.order_id == "ORD-1001"
        assert not view.degraded

    def test_fallback_marks_view_degraded(self, store, resolver):
        store.save("ORD-1001", make_snapshot())
        view = resolver.resolve("1001")

        assert isinstance(view, ConfirmationView)
        assert view.degraded
        assert view.order_id == "ORD-1001"

    def test_nothing_stored_gives_not_found_view(self, resolver):
        view = resolver.resolve("ORD-404")

        assert isinstance(view, NotFoundView)
        assert view.message == "Order not found. Please check your order history."
        assert [(a.label, a.href) for a in view.actions] == [
            ("View All Orders", "/account/orders"), ("Back to Home", "/")]

    def test_unrelated_last_order_is_not_shown(self, store, resolver):
        store.save("ORD-1001", make_snapshot())
        assert isinstance(resolver.resolve("ORD-2002"), NotFoundView)

    def test_unreadable_snapshot_gives_storage_failure_view(self, store, resolver):
        store.save("ORD-1001", make_snapshot(currency="EUR"))
        view = resolver.resolve("ORD-1001")

        assert isinstance(view, NotFoundView)
        assert view.message == "Failed to load order details"

    def test_missing_id(self, resolver):
        view = resolver.resolve(None)
        assert view.message == "No order information found"

    def test_expired_message(self, kv, resolver):
        kv.set(LAST_ORDER_KEY, "ORD-1001")
        assert resolver.resolve("ORD-1001").message == "Order data not found. It may have expired."

    def test_pending_clear_cart_flag_clears_once(self, store, seller_kilimanjaro):
        cart = InMemoryCart([
            CartItem(productId="p-1", title="Carved Giraffe", price=45000, quantity=2,
                     seller=seller_kilimanjaro, selected=True),
            CartItem(productId="p-3", title="Camping Stove", price=80000, quantity=1, selected=False),
        ])
        resolver = OrderConfirmationResolver(store, cart)
        store.save("ORD-1001", make_snapshot())
        store.mark_clear_cart()

        resolver.resolve("ORD-1001")
        assert [i.productId for i in cart.items] == ["p-3"]

        cart.add(CartItem(productId="p-9", title="Basket", price=5000, quantity=1, selected=True))
        resolver.resolve("ORD-1001")
        assert [i.productId for i in cart.items] == ["p-3", "p-9"]

    def test_not_found_does_not_clear_cart(self, store, seller_kilimanjaro):
        cart = InMemoryCart([CartItem(productId="p-1", title="Carved Giraffe", price=45000, quantity=1,
                                      seller=seller_kilimanjaro, selected=True)])
        store.mark_clear_cart()

        OrderConfirmationResolver(store, cart).resolve("ORD-404")
        assert len(cart.items) == 1
        assert store.consume_clear_cart_flag()
