# module freshcart.cart.models
"""Entrée de panier et normalisation des lignes renvoyées par Supabase."""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Optional

from freshcart.money import to_money


@dataclass(frozen=True)
class CartEntry:
    product_id: str
    quantity: int
    unit_price: Decimal
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    @property
    def farmer_id(self) -> Optional[str]:
        farmer = self.metadata.get("farmer_id") or (self.metadata.get("farmer") or {}).get("id")
        return str(farmer) if farmer else None

    def with_quantity(self, quantity: int) -> "CartEntry":
        return replace(self, quantity=quantity)

    def to_row(self, buyer_id: str) -> Dict[str, Any]:
        """Ligne 'cart_items' pour un upsert (quantité absolue, prix figé à l'ajout)."""
        return {
            "buyer_id": buyer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "product": dict(self.metadata),
        }

def entry_from_row(row: Dict[str, Any]) -> Optional[CartEntry]:
    """
    Construit une CartEntry depuis une ligne 'cart_items' (avec jointure products optionnelle).
    - Prix: unit_price figé à l'ajout, sinon prix courant du produit joint.
    - Métadonnées: snapshot 'product' stocké, complété par la jointure.
    - Retourne None si la ligne est inexploitable (produit absent, quantité <= 0).
    """
    joined = row.get("products") or {}
    stored = row.get("product") or {}
    metadata = {**joined, **stored}
    product_id = str(row.get("product_id") or metadata.get("id") or "").strip()
    quantity = int(row.get("quantity") or 0)
    if not product_id or quantity <= 0:
        return None
    price = row.get("unit_price")
    if price is None:
        price = metadata.get("price")
    return CartEntry(
        product_id=product_id,
        quantity=quantity,
        unit_price=to_money(price),
        metadata=metadata,
    )
