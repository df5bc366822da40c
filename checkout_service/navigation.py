"""Navigation targets and a navigator that records where checkout sent the user."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol
from urllib.parse import urlencode

CHECKOUT_ROUTE = "/checkout"
CONFIRMATION_ROUTE = "/checkout/success"
LOGIN_ROUTE = "/login"
CART_ROUTE = "/cart"
ORDER_HISTORY_ROUTE = "/account/orders"
HOME_ROUTE = "/"


def confirmation_route(order_id: str) -> str:
    return f"{CONFIRMATION_ROUTE}?{urlencode({'orderId': order_id})}"


def login_route(return_to: str = CHECKOUT_ROUTE) -> str:
    return f"{LOGIN_ROUTE}?{urlencode({'returnUrl': return_to})}"


def selection_required_route() -> str:
    return f"{CART_ROUTE}?{urlencode({'selectionRequired': 'true'})}"


class NavigationKind(str, Enum):
    REDIRECT = "redirect"  # full top-level redirect, in-memory state is lost
    ROUTE = "route"        # in-app navigation


class Navigator(Protocol):
    def redirect(self, url: str) -> None: ...

    def navigate(self, route: str) -> None: ...


@dataclass(frozen=True)
class NavigationEvent:
    kind: NavigationKind
    target: str


@dataclass
class RecordingNavigator:
    """
    Keeps every navigation request in order.

    The HTTP layer hands the last event back to the browser, which performs the
    actual redirect or route change.
    """
    events: List[NavigationEvent] = field(default_factory=list)

    def redirect(self, url: str) -> None:
        self.events.append(NavigationEvent(NavigationKind.REDIRECT, url))

    def navigate(self, route: str) -> None:
        self.events.append(NavigationEvent(NavigationKind.ROUTE, route))

    @property
    def last(self) -> Optional[NavigationEvent]:
        return self.events[-1] if self.events else None
