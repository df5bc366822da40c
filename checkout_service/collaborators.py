"""
collaborators.py — Contracts of the Services Checkout Depends On

Checkout consumes three collaborators owned by other parts of the marketplace:
    • Cart: the item collection, the subset selected for checkout, and clear()
    • Auth: the signed-in user, used for address pre-fill and the processor token
    • Verification gate: decides whether the user may perform an action ("buy")

The Protocols describe the narrow surface checkout relies on. The in-memory
implementations back the API process and the test-suite.
"""

import logging
from typing import Iterable, List, Optional, Protocol

from pydantic import BaseModel

from .models import CartItem, LineItem

log = logging.getLogger(__name__)


class User(BaseModel):
    """The signed-in user as exposed by the auth collaborator."""
    name: str = ""
    email: str = ""
    phone: str = ""
    token: str = ""
    canBuy: bool = True


class Cart(Protocol):
    @property
    def items(self) -> List[CartItem]: ...

    @property
    def selected_items(self) -> List[LineItem]: ...

    @property
    def selected_subtotal(self) -> int: ...

    def clear(self) -> None: ...


class AuthProvider(Protocol):
    @property
    def current_user(self) -> Optional[User]: ...


class VerificationGate(Protocol):
    def check_verification(self, action: str) -> bool: ...


class InMemoryCart:
    """Cart held in process memory. `clear()` removes the items that were checked out."""

    def __init__(self, items: Iterable[CartItem] = ()):
        self._items: List[CartItem] = list(items)

    @property
    def items(self) -> List[CartItem]:
        return list(self._items)

    @property
    def selected_items(self) -> List[LineItem]:
        return [item.to_line_item() for item in self._items if item.selected]

    @property
    def selected_subtotal(self) -> int:
        return sum(item.line_total for item in self._items if item.selected)

    def add(self, item: CartItem) -> None:
        self._items.append(item)

    def clear(self) -> None:
        removed = sum(1 for item in self._items if item.selected)
        self._items = [item for item in self._items if not item.selected]
        log.info(f"Cart cleared: {removed} purchased item(s) removed, {len(self._items)} remaining.")


class StaticAuth:
    def __init__(self, user: Optional[User] = None):
        self._user = user

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def sign_in(self, user: User) -> None:
        self._user = user

    def sign_out(self) -> None:
        self._user = None


class UserVerificationGate:
    """Allows "buy" only for users whose profile carries the canBuy flag."""

    def __init__(self, auth: AuthProvider):
        self._auth = auth

    def check_verification(self, action: str) -> bool:
        user = self._auth.current_user
        if user is None:
            return False
        if action == "buy":
            return user.canBuy
        return True
