import asyncio
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

from freshcart.app_setup.factory import create_app
from freshcart.cart.models import CartEntry
from freshcart.cart.sessions import CartSessions
from freshcart.checkout.coordinator import CheckoutCoordinator
from freshcart.errors import OrderWriteError, RemoteSyncError
from freshcart.payments import ConfirmationRegistry, FakeGateway

WEBHOOK_SECRET = "whsec_test"
BUYER = "buyer-1"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


class _Failures:
    """Injection d'échecs: fail_next('methode', n) fait échouer les n prochains appels."""

    error = RemoteSyncError

    def __init__(self) -> None:
        self.failures: Dict[str, int] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[tuple] = []

    def fail_next(self, method: str, times: int = 1) -> None:
        self.failures[method] = times

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        delay = self.delays.get(method, 0)
        await asyncio.sleep(delay)
        if self.failures.get(method):
            self.failures[method] -= 1
            raise self.error(f"{method} indisponible")


class FakeCartRemote(_Failures):
    """Table cart_items en mémoire (même contrat que freshcart.cart.repository)."""

    def __init__(self) -> None:
        super().__init__()
        self.rows: Dict[str, Dict[str, CartEntry]] = {}

    def seed(self, buyer_id: str, *entries: CartEntry) -> None:
        cart = self.rows.setdefault(buyer_id, {})
        for entry in entries:
            cart[entry.product_id] = entry

    def quantities(self, buyer_id: str) -> Dict[str, int]:
        return {pid: e.quantity for pid, e in self.rows.get(buyer_id, {}).items()}

    async def get_items(self, buyer_id: str) -> List[CartEntry]:
        await self._enter("get_items", buyer_id)
        return list(self.rows.get(buyer_id, {}).values())

    async def add_item(self, buyer_id: str, entry: CartEntry) -> None:
        await self._enter("add_item", buyer_id, entry.product_id, entry.quantity)
        self.rows.setdefault(buyer_id, {})[entry.product_id] = entry

    async def update_quantity(self, buyer_id: str, product_id: str, quantity: int) -> None:
        await self._enter("update_quantity", buyer_id, product_id, quantity)
        cart = self.rows.setdefault(buyer_id, {})
        if quantity <= 0:
            cart.pop(product_id, None)
        elif product_id in cart:
            cart[product_id] = cart[product_id].with_quantity(quantity)

    async def remove_item(self, buyer_id: str, product_id: str) -> None:
        await self._enter("remove_item", buyer_id, product_id)
        self.rows.setdefault(buyer_id, {}).pop(product_id, None)

    async def clear_cart(self, buyer_id: str) -> None:
        await self._enter("clear_cart", buyer_id)
        self.rows[buyer_id] = {}

    async def clear_items(self, buyer_id: str, product_ids) -> None:
        ids = list(product_ids)
        await self._enter("clear_items", buyer_id, ids)
        cart = self.rows.setdefault(buyer_id, {})
        for pid in ids:
            cart.pop(pid, None)


class FakeOrders(_Failures):
    """Tables orders / order_items en mémoire (référence de paiement unique)."""

    error = OrderWriteError

    def __init__(self) -> None:
        super().__init__()
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.items: Dict[str, List[Dict[str, Any]]] = {}
        # Écriture effectuée mais réponse perdue (timeout réseau après commit côté base)
        self.lose_insert_response = 0

    def by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        for order in self.orders.values():
            if order["payment_reference"] == reference:
                return order
        return None

    async def insert_order(self, row: Dict[str, Any]) -> str:
        await self._enter("insert_order", row.get("payment_reference"))
        if self.by_reference(row["payment_reference"]):
            raise OrderWriteError("duplicate key value violates unique constraint orders_payment_reference_key")
        order_id = f"order-{len(self.orders) + 1}"
        self.orders[order_id] = {**row, "id": order_id}
        if self.lose_insert_response:
            self.lose_insert_response -= 1
            raise OrderWriteError("insert_order: timeout")
        return order_id

    async def find_order_by_payment_reference(self, reference: str) -> Optional[str]:
        await self._enter("find_order_by_payment_reference", reference)
        order = self.by_reference(reference)
        return order["id"] if order else None

    async def insert_order_items(self, order_id: str, items: List[Dict[str, Any]]) -> None:
        await self._enter("insert_order_items", order_id, len(items))
        self.items[order_id] = [{**item, "order_id": order_id} for item in items]

    async def list_order_items(self, order_id: str) -> List[Dict[str, Any]]:
        await self._enter("list_order_items", order_id)
        return list(self.items.get(order_id, []))

    async def update_order_status(self, order_id: str, status: str) -> None:
        await self._enter("update_order_status", order_id, status)
        self.orders[order_id]["status"] = status

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        await self._enter("get_order", order_id)
        order = self.orders.get(order_id)
        if order is None:
            return None
        return {**order, "items": list(self.items.get(order_id, []))}


@pytest.fixture
def cart_remote() -> FakeCartRemote:
    return FakeCartRemote()

@pytest.fixture
def orders() -> FakeOrders:
    return FakeOrders()

@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

@pytest.fixture
def make_coordinator(gateway, orders, cart_remote):
    """Coordinateur rapide: délais courts, retries sans attente."""
    def _make(**overrides) -> CheckoutCoordinator:
        options = dict(
            confirmations=ConfirmationRegistry(),
            orders=orders,
            cart=cart_remote,
            currency="INR",
            payment_timeout=1.0,
            poll_interval=0.01,
            max_retries=3,
            retry_wait=0,
        )
        options.update(overrides)
        return CheckoutCoordinator(gateway, **options)
    return _make

@pytest.fixture
def app(gateway, orders, cart_remote, make_coordinator):
    fastapi_app = create_app()
    fastapi_app.state.gateway = gateway
    fastapi_app.state.webhook_secret = WEBHOOK_SECRET
    fastapi_app.state.coordinator = make_coordinator(max_retries=2)
    fastapi_app.state.cart_sessions = CartSessions(remote=cart_remote)
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app, headers={"X-Buyer-Id": BUYER}) as c:
        yield c
