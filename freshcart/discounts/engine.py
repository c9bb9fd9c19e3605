"""
Moteur de remise (pur).
- Registre fixe des codes valides (insensible à la casse).
- compute_discount(code, subtotal): montant de remise, arrondi au centime et borné à [0, subtotal].
- Aucune dépendance au panier courant: seul le sous-total passé en argument compte.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from freshcart.errors import ValidationError
from freshcart.money import ZERO, to_money


@dataclass(frozen=True)
class Discount:
    code: str
    percentage: Decimal


# Registre externe fixe: code -> pourcentage
DISCOUNT_CODES: Dict[str, Decimal] = {
    "FRESH10": Decimal("10"),
}

def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()

def lookup(code: Optional[str]) -> Discount:
    """
    Valide un code promo contre le registre.
    - Soulève ValidationError si le code est vide ou inconnu (l'appelant doit l'afficher).
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError("Code promo manquant")
    percentage = DISCOUNT_CODES.get(normalized)
    if percentage is None:
        raise ValidationError(f"Code promo invalide: {code}")
    return Discount(code=normalized, percentage=percentage)

def discount_for(discount: Optional[Discount], subtotal: Any) -> Decimal:
    """Montant de remise pour une remise déjà validée (0.00 si aucune)."""
    subtotal = to_money(subtotal)
    if discount is None or subtotal <= ZERO:
        return ZERO
    amount = to_money(subtotal * discount.percentage / Decimal(100))
    return min(max(amount, ZERO), subtotal)

def compute_discount(code: Optional[str], subtotal: Any) -> Decimal:
    return discount_for(lookup(code), subtotal)
