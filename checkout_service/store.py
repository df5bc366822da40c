"""
store.py — Local Order Persistence

After a successful submission the order is written to a local key-value store so the
confirmation page can be rendered without another backend call. For hosted payments
this is the only record the client has once the browser leaves for the payment page.

Key layout:
    order_<orderId>      -> OrderSnapshot as JSON
    lastOrderId          -> id of the most recently saved order
    clearCartAfterOrder  -> "true" while a cart clear is pending (consumed once)

Lookup chain for `OrderPersistenceStore.load`:
    1. exact key `order_<orderId>`
    2. `lastOrderId`, if the requested id matches it after normalization
       (whitespace, letter case, or the short number shown on the confirmation page)
    3. OrderNotFoundError

Retention:
    Snapshots expire ORDER_RETENTION_DAYS after they were saved. Expired entries are
    deleted on read and reported as not found.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

from pydantic import ValidationError

from .currency import is_supported
from .errors import OrderNotFoundError, PersistenceError
from .models import OrderSnapshot

ORDER_STORE_PATH = Path(os.environ.get(
    "ORDER_STORE_PATH",
    os.path.expanduser("~/.config/marketplace-checkout/orders.json"),
))
ORDER_RETENTION_DAYS = int(os.environ.get("ORDER_RETENTION_DAYS", "30"))

ORDER_KEY_PREFIX = "order_"
LAST_ORDER_KEY = "lastOrderId"
CLEAR_CART_FLAG_KEY = "clearCartAfterOrder"

log = logging.getLogger(__name__)


def order_key(order_id: str) -> str:
    return f"{ORDER_KEY_PREFIX}{order_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Key-value backends ---

class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self):
        self.data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore:
    """
    Durable key-value store kept in a single JSON file.

    Writes go to a temporary file that replaces the original, so a crash never
    leaves a half-written store behind.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else ORDER_STORE_PATH

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Order store {self._path} is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Order store {self._path} does not contain an object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".orders-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self._path)
        except OSError as e:
            raise PersistenceError(f"Could not write order store {self._path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


# --- Order store ---

class LoadSource(str, Enum):
    EXACT = "exact"
    FALLBACK = "fallback"


class NotFoundReason(Enum):
    MISSING_ID = "No order information found"
    EXPIRED = "Order data not found. It may have expired."
    NOT_FOUND = "Order not found. Please check your order history."
    STORAGE_FAILURE = "Failed to load order details"


@dataclass(frozen=True)
class LoadedOrder:
    snapshot: OrderSnapshot
    source: LoadSource

    @property
    def degraded(self) -> bool:
        return self.source is LoadSource.FALLBACK


def _normalize_id(order_id: str) -> str:
    return order_id.strip().lower()


def ids_match(requested: str, stored: str) -> bool:
    """
    Loose comparison used only for the lastOrderId fallback.

    Matches ignoring surrounding whitespace and case, and also accepts the short
    order number (the part after the first '-') that the confirmation page displays.
    """
    req, ref = _normalize_id(requested), _normalize_id(stored)
    if not req or not ref:
        return False
    if req == ref:
        return True
    _, sep, short = ref.partition("-")
    return bool(sep) and req == short


class OrderPersistenceStore:
    """
    Saves and loads order snapshots on top of an injected KeyValueStore.

    Args:
        backend (KeyValueStore): Where keys live (in-memory in tests, JSON file in the app).
        retention (timedelta): How long a snapshot stays readable after saving.
        clock (Callable): Returns the current aware datetime.
    """

    def __init__(self, backend: KeyValueStore, retention: Optional[timedelta] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.backend = backend
        self.retention = retention if retention is not None else timedelta(days=ORDER_RETENTION_DAYS)
        self._clock = clock

    def save(self, order_id: str, snapshot: OrderSnapshot) -> OrderSnapshot:
        """
        Writes the snapshot and records it as the most recent order.

        Returns:
            OrderSnapshot: The stored snapshot, stamped with `savedAt`.
        Raises:
            PersistenceError: If the backend rejects the write. Callers must not
                navigate away when this happens. A snapshot whose `lastOrderId`
                write failed is removed again, so nothing is left half-saved.
        """
        stored = snapshot.model_copy(update={"savedAt": self._clock()})
        key = order_key(order_id)
        try:
            self.backend.set(key, stored.model_dump_json())
            try:
                self.backend.set(LAST_ORDER_KEY, order_id)
            except (PersistenceError, OSError, TypeError, ValueError):
                self.backend.delete(key)
                raise
        except PersistenceError:
            log.error(f"[Order: {order_id}] Snapshot could not be persisted.")
            raise
        except (OSError, TypeError, ValueError) as e:
            log.error(f"[Order: {order_id}] Snapshot could not be persisted: {e}")
            raise PersistenceError(str(e)) from e
        log.info(f"[Order: {order_id}] Snapshot persisted under {order_key(order_id)}.")
        return stored

    def load(self, order_id: Optional[str]) -> LoadedOrder:
        """
        Resolves a snapshot through the lookup chain.

        Returns:
            LoadedOrder: The snapshot and whether it came from the exact key or the fallback.
        Raises:
            OrderNotFoundError: With a NotFoundReason. Storage and parse failures are
                reported as STORAGE_FAILURE, never raised as-is.
        """
        if not order_id or not order_id.strip():
            raise OrderNotFoundError(order_id, NotFoundReason.MISSING_ID)

        try:
            snapshot, expired = self._read(order_id)
            if snapshot is not None:
                return LoadedOrder(snapshot, LoadSource.EXACT)

            last_order_id = self.backend.get(LAST_ORDER_KEY)
            if last_order_id and ids_match(order_id, last_order_id):
                if last_order_id == order_id:
                    # The exact key already missed; lastOrderId points at the same entry.
                    raise OrderNotFoundError(order_id, NotFoundReason.EXPIRED)
                snapshot, _ = self._read(last_order_id)
                if snapshot is not None:
                    log.warning(
                        f"[Order: {order_id}] Degraded hit: resolved via {LAST_ORDER_KEY}={last_order_id}."
                    )
                    return LoadedOrder(snapshot, LoadSource.FALLBACK)
                expired = True
        except PersistenceError as e:
            log.error(f"[Order: {order_id}] Order store failure, treating as not found: {e}")
            raise OrderNotFoundError(order_id, NotFoundReason.STORAGE_FAILURE) from e

        reason = NotFoundReason.EXPIRED if expired else NotFoundReason.NOT_FOUND
        log.info(f"[Order: {order_id}] No snapshot found ({reason.name}).")
        raise OrderNotFoundError(order_id, reason)

    def _read(self, order_id: str):
        raw = self.backend.get(order_key(order_id))
        if raw is None:
            return None, False
        try:
            snapshot = OrderSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Snapshot for {order_id} is corrupt: {e}") from e
        if not is_supported(snapshot.currency):
            raise PersistenceError(f"Snapshot for {order_id} has unsupported currency {snapshot.currency!r}")
        if snapshot.savedAt is not None and snapshot.savedAt.tzinfo is None:
            raise PersistenceError(f"Snapshot for {order_id} has a savedAt without timezone")

        if snapshot.savedAt is not None and self._clock() - snapshot.savedAt > self.retention:
            log.info(f"[Order: {order_id}] Snapshot older than {self.retention.days} days, evicting.")
            self.backend.delete(order_key(order_id))
            return None, True
        return snapshot, False

    def delete(self, order_id: str) -> None:
        self.backend.delete(order_key(order_id))
        if self.backend.get(LAST_ORDER_KEY) == order_id:
            self.backend.delete(LAST_ORDER_KEY)

    def mark_clear_cart(self) -> None:
        self.backend.set(CLEAR_CART_FLAG_KEY, "true")

    def consume_clear_cart_flag(self) -> bool:
        """Returns True at most once per mark_clear_cart() call."""
        if self.backend.get(CLEAR_CART_FLAG_KEY) != "true":
            return False
        self.backend.delete(CLEAR_CART_FLAG_KEY)
        return True
