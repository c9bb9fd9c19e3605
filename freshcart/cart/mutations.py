"""
Mutations du panier: un effet local (optimiste) + une jambe distante.
- apply(items): modifie le cache local; rejouable après un re-fetch tant que la mutation n'est pas envoyée.
- send(remote, buyer_id): écriture distante idempotente (quantités absolues, suppressions rejouables).
- propagate: si True, l'échec distant est relevé à l'appelant après re-synchronisation.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from freshcart.cart.models import CartEntry
from freshcart.money import to_money

Items = Dict[str, CartEntry]


class Mutation:
    name = "mutation"
    propagate = False

    def apply(self, items: Items) -> None:
        raise NotImplementedError

    async def send(self, remote: Any, buyer_id: str) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.name}>"


class AddItem(Mutation):
    name = "add_item"

    def __init__(self, product_id: str, quantity: int, unit_price: Optional[Decimal] = None, metadata: Optional[Dict[str, Any]] = None):
        self.product_id = product_id
        self.quantity = quantity
        self.unit_price = unit_price
        self.metadata = dict(metadata or {})
        self.entry: Optional[CartEntry] = None

    def apply(self, items: Items) -> None:
        existing = items.get(self.product_id)
        if existing is not None:
            # Fusion: le prix figé au premier ajout est conservé
            self.entry = existing.with_quantity(existing.quantity + self.quantity)
        elif self.unit_price is not None:
            self.entry = CartEntry(
                product_id=self.product_id,
                quantity=self.quantity,
                unit_price=to_money(self.unit_price),
                metadata=self.metadata,
            )
        else:
            # Rejeu après re-fetch: la ligne a disparu et le prix est inconnu
            self.entry = None
            return
        items[self.product_id] = self.entry

    async def send(self, remote: Any, buyer_id: str) -> None:
        if self.entry is None:
            return
        await remote.add_item(buyer_id, self.entry)


class UpdateQuantity(Mutation):
    name = "update_quantity"

    def __init__(self, product_id: str, quantity: int):
        self.product_id = product_id
        self.quantity = quantity

    def apply(self, items: Items) -> None:
        existing = items.get(self.product_id)
        if existing is not None:
            items[self.product_id] = existing.with_quantity(self.quantity)

    async def send(self, remote: Any, buyer_id: str) -> None:
        await remote.update_quantity(buyer_id, self.product_id, self.quantity)


class RemoveItem(Mutation):
    name = "remove_item"

    def __init__(self, product_id: str):
        self.product_id = product_id

    def apply(self, items: Items) -> None:
        items.pop(self.product_id, None)

    async def send(self, remote: Any, buyer_id: str) -> None:
        await remote.remove_item(buyer_id, self.product_id)


class ClearCart(Mutation):
    name = "clear_cart"

    def apply(self, items: Items) -> None:
        items.clear()

    async def send(self, remote: Any, buyer_id: str) -> None:
        await remote.clear_cart(buyer_id)


class RetireItems(Mutation):
    """Retrait post-commande: uniquement les produits achetés, ou tout le panier si full."""

    name = "retire_items"
    propagate = True

    def __init__(self, product_ids: Iterable[str], full: bool = False):
        self.product_ids = [str(p) for p in product_ids]
        self.full = full

    def apply(self, items: Items) -> None:
        if self.full:
            items.clear()
            return
        for product_id in self.product_ids:
            items.pop(product_id, None)

    async def send(self, remote: Any, buyer_id: str) -> None:
        if self.full:
            await remote.clear_cart(buyer_id)
        else:
            await remote.clear_items(buyer_id, self.product_ids)
