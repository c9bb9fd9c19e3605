"""
Snapshot de checkout: copie figée des articles et totaux d'une tentative.
Pris une seule fois avant le paiement, puis réutilisé tel quel pour l'écriture de la commande.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from freshcart.cart.models import CartEntry
from freshcart.checkout.pricing import shipping_for, total_for
from freshcart.discounts import discount_for
from freshcart.errors import ValidationError
from freshcart.money import ZERO, to_money


@dataclass(frozen=True)
class CheckoutSnapshot:
    buyer_id: str
    farmer_id: Optional[str]
    items: Tuple[CartEntry, ...]
    subtotal: Decimal
    discount_code: Optional[str]
    discount_amount: Decimal
    shipping: Decimal
    total: Decimal
    delivery_address: str
    notes: Optional[str] = None
    full_cart: bool = False

    @property
    def product_ids(self) -> List[str]:
        return [e.product_id for e in self.items]

    def order_row(self, payment_reference: str, status: str) -> Dict[str, Any]:
        return {
            "buyer_id": self.buyer_id,
            "farmer_id": self.farmer_id,
            "total_price": str(self.total),
            "delivery_address": self.delivery_address,
            "payment_reference": payment_reference,
            "notes": self.notes,
            "status": status,
        }

    def order_item_rows(self) -> List[Dict[str, Any]]:
        return [
            {
                "product_id": e.product_id,
                "quantity": e.quantity,
                "price_per_unit": str(e.unit_price),
                "total_price": str(e.line_total),
            }
            for e in self.items
        ]

    def totals(self) -> Dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount_amount),
            "shipping": str(self.shipping),
            "total": str(self.total),
        }

def _farmer_for(items: Iterable[CartEntry], farmer_id: Optional[str]) -> Optional[str]:
    if farmer_id:
        return str(farmer_id)
    farmers = {e.farmer_id for e in items if e.farmer_id}
    if len(farmers) > 1:
        raise ValidationError("Articles de plusieurs producteurs: préciser farmer_id ou commander séparément")
    return farmers.pop() if farmers else None

def build_snapshot(
    store: Any,
    delivery_address: str,
    notes: Optional[str] = None,
    product_ids: Optional[Iterable[str]] = None,
    farmer_id: Optional[str] = None,
) -> CheckoutSnapshot:
    """
    Fige la sélection à acheter et ses totaux.
    - product_ids None: tout le panier; sinon le sous-ensemble demandé.
    - La remise active est recalculée sur le sous-total de la sélection.
    - Erreurs: ValidationError si adresse vide, sélection vide, producteur ambigu.
    """
    address = (delivery_address or "").strip()
    if not address:
        raise ValidationError("Adresse de livraison requise")
    ids = None if product_ids is None else list(dict.fromkeys(str(p) for p in product_ids))
    items = store.snapshot_items(ids)
    if not items:
        raise ValidationError("Panier vide")
    subtotal = to_money(sum((e.line_total for e in items), ZERO))
    discount = store.discount
    discount_amount = discount_for(discount, subtotal)
    shipping = shipping_for(subtotal)
    selected = {e.product_id for e in items}
    return CheckoutSnapshot(
        buyer_id=store.buyer_id,
        farmer_id=_farmer_for(items, farmer_id),
        items=tuple(items),
        subtotal=subtotal,
        discount_code=discount.code if discount else None,
        discount_amount=discount_amount,
        shipping=shipping,
        total=total_for(subtotal, discount_amount, shipping),
        delivery_address=address,
        notes=(notes or "").strip() or None,
        full_cart=selected == {e.product_id for e in store.items()},
    )
