"""Tests for the local order store and its lookup chain."""
import json
from datetime import datetime, timedelta, timezone

import pytest

from checkout_service.errors import OrderNotFoundError, PersistenceError
from checkout_service.store import (
    CLEAR_CART_FLAG_KEY,
    LAST_ORDER_KEY,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    LoadSource,
    NotFoundReason,
    OrderPersistenceStore,
    ids_match,
    order_key,
)

from conftest import make_snapshot


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


def test_save_writes_snapshot_and_last_order(store, kv):
    stored = store.save("ORD-1001", make_snapshot())

    assert stored.savedAt is not None
    assert kv.get(LAST_ORDER_KEY) == "ORD-1001"
    assert json.loads(kv.get(order_key("ORD-1001")))["id"] == "ORD-1001"


def test_exact_hit(store):
    store.save("ORD-1001", make_snapshot())
    loaded = store.load("ORD-1001")

    assert loaded.source is LoadSource.EXACT
    assert not loaded.degraded
    assert loaded.snapshot.items[0].title == "Carved Giraffe"


@pytest.mark.parametrize("requested", ["ord-1001", " ORD-1001 ", "1001"])
def test_fallback_to_last_order(store, requested):
    store.save("ORD-1001", make_snapshot())
    loaded = store.load(requested)

    assert loaded.source is LoadSource.FALLBACK
    assert loaded.degraded
    assert loaded.snapshot.id == "ORD-1001"


def test_unrelated_id_is_not_served_from_last_order(store):
    store.save("ORD-1001", make_snapshot())
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-2002")
    assert exc.value.reason is NotFoundReason.NOT_FOUND
    assert exc.value.user_message == "Order not found. Please check your order history."


@pytest.mark.parametrize("order_id", [None, "", "   "])
def test_missing_id(store, order_id):
    with pytest.raises(OrderNotFoundError) as exc:
        store.load(order_id)
    assert exc.value.reason is NotFoundReason.MISSING_ID


def test_nothing_stored(store):
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.NOT_FOUND


def test_last_order_without_snapshot_is_expired(store, kv):
    kv.set(LAST_ORDER_KEY, "ORD-1001")
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.EXPIRED


def test_retention_evicts_on_read(kv, clock):
    store = OrderPersistenceStore(kv, retention=timedelta(days=30), clock=clock)
    store.save("ORD-1001", make_snapshot())

    clock.advance(days=29)
    assert store.load("ORD-1001").source is LoadSource.EXACT

    clock.advance(days=2)
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.EXPIRED
    assert kv.get(order_key("ORD-1001")) is None


def test_expired_entry_is_not_reachable_through_fallback(kv, clock):
    store = OrderPersistenceStore(kv, retention=timedelta(days=1), clock=clock)
    store.save("ORD-1001", make_snapshot())
    clock.advance(days=2)

    with pytest.raises(OrderNotFoundError) as exc:
        store.load("1001")
    assert exc.value.reason is NotFoundReason.EXPIRED


def test_corrupt_snapshot_reports_storage_failure(store, kv):
    kv.set(order_key("ORD-1001"), "{not json")
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.STORAGE_FAILURE
    assert exc.value.user_message == "Failed to load order details"


def test_backend_failure_on_save_is_persistence_error():
    class BrokenBackend(InMemoryKeyValueStore):
        def set(self, key, value):
            raise OSError("disk full")

    store = OrderPersistenceStore(BrokenBackend())
    with pytest.raises(PersistenceError):
        store.save("ORD-1001", make_snapshot())


def test_unknown_currency_in_snapshot_is_storage_failure(store):
    store.save("ORD-1001", make_snapshot(currency="EUR"))
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.STORAGE_FAILURE


def test_saved_at_without_timezone_is_storage_failure(store, kv):
    naive = make_snapshot(savedAt=datetime(2026, 3, 14, 9, 30))
    kv.set(order_key("ORD-1001"), naive.model_dump_json())
    with pytest.raises(OrderNotFoundError) as exc:
        store.load("ORD-1001")
    assert exc.value.reason is NotFoundReason.STORAGE_FAILURE


def test_failed_last_order_write_leaves_no_snapshot():
    class LastOrderRejected(InMemoryKeyValueStore):
        def set(self, key, value):
            if key == LAST_ORDER_KEY:
                raise PersistenceError("quota exceeded")
            super().set(key, value)

    backend = LastOrderRejected()
    with pytest.raises(PersistenceError):
        OrderPersistenceStore(backend).save("ORD-1001", make_snapshot())
    assert backend.data == {}


def test_delete_forgets_last_order(store, kv):
    store.save("ORD-1001", make_snapshot())
    store.delete("ORD-1001")

    assert kv.get(order_key("ORD-1001")) is None
    assert kv.get(LAST_ORDER_KEY) is None


def test_clear_cart_flag_is_consumed_once(store, kv):
    assert not store.consume_clear_cart_flag()
    store.mark_clear_cart()

    assert kv.get(CLEAR_CART_FLAG_KEY) == "true"
    assert store.consume_clear_cart_flag()
    assert not store.consume_clear_cart_flag()


class TestIdsMatch:
    def test_exact_and_case(self):
        assert ids_match("ORD-1001", "ORD-1001")
        assert ids_match("ord-1001", "ORD-1001")

    def test_short_number(self):
        assert ids_match("1001", "ORD-1001")
        assert not ids_match("ORD", "ORD-1001")

    def test_blank_never_matches(self):
        assert not ids_match("", "ORD-1001")
        assert not ids_match("ORD-1001", "")


class TestJsonFileStore:
    def test_survives_a_new_instance(self, tmp_path):
        path = tmp_path / "orders.json"
        OrderPersistenceStore(JsonFileKeyValueStore(path)).save("ORD-1001", make_snapshot())

        reopened = OrderPersistenceStore(JsonFileKeyValueStore(path))
        assert reopened.load("ORD-1001").snapshot.id == "ORD-1001"
        assert not list(tmp_path.glob(".orders-*"))

    def test_missing_file_reads_as_empty(self, tmp_path):
        backend = JsonFileKeyValueStore(tmp_path / "nested" / "orders.json")
        assert backend.get(LAST_ORDER_KEY) is None

    def test_unreadable_file_is_storage_failure(self, tmp_path):
        path = tmp_path / "orders.json"
        path.write_text("[1, 2", encoding="utf-8")
        store = OrderPersistenceStore(JsonFileKeyValueStore(path))

        with pytest.raises(OrderNotFoundError) as exc:
            store.load("ORD-1001")
        assert exc.value.reason is NotFoundReason.STORAGE_FAILURE

    def test_delete_removes_key(self, tmp_path):
        backend = JsonFileKeyValueStore(tmp_path / "orders.json")
        backend.set("a", "1")
        backend.delete("a")
        assert backend.get("a") is None
