import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from freshcart.cart.sessions import CartSessions
from freshcart.cart.store import CartStore
from freshcart.security import require_buyer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class AddItemBody(BaseModel):
    product_id: str
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    product: Dict[str, Any] = Field(default_factory=dict)


class QuantityBody(BaseModel):
    quantity: int


class DiscountBody(BaseModel):
    code: str


def get_cart_sessions(request: Request) -> CartSessions:
    return request.app.state.cart_sessions

async def current_cart(
    buyer_id: str = Depends(require_buyer),
    sessions: CartSessions = Depends(get_cart_sessions),
) -> CartStore:
    """CartStore de l'acheteur courant, chargé depuis Supabase au premier accès."""
    return await sessions.get(buyer_id)

# module freshcart.cart.views
@router.get("")
async def get_cart(store: CartStore = Depends(current_cart)):
    return store.summary()

@router.post("/refresh")
async def refresh_cart(store: CartStore = Depends(current_cart)):
    """Relit le panier autoritatif (pendant du fetchCart côté client)."""
    await store.fetch()
    return store.summary()

@router.post("/items")
async def add_item(body: AddItemBody, store: CartStore = Depends(current_cart)):
    """
    Ajoute un produit (fusion des quantités si déjà présent).
    - Prix: unit_price explicite, sinon product.price.
    - Erreurs: 400 si quantité/prix invalides (ValidationError).
    - Un échec distant n'est pas une erreur HTTP: le panier est re-synchronisé, 'error' renseigné.
    """
    await store.add_item(body.product_id, body.quantity, unit_price=body.unit_price, metadata=body.product)
    return store.summary()

@router.put("/items/{product_id}")
async def update_quantity(product_id: str, body: QuantityBody, store: CartStore = Depends(current_cart)):
    await store.update_quantity(product_id, body.quantity)
    return store.summary()

@router.delete("/items/{product_id}")
async def remove_item(product_id: str, store: CartStore = Depends(current_cart)):
    await store.remove_item(product_id)
    return store.summary()

@router.delete("")
async def clear_cart(store: CartStore = Depends(current_cart)):
    await store.clear_cart()
    return store.summary()

@router.post("/discount")
async def apply_discount(body: DiscountBody, store: CartStore = Depends(current_cart)):
    store.apply_discount(body.code)
    return store.summary()

@router.delete("/discount")
async def remove_discount(store: CartStore = Depends(current_cart)):
    store.remove_discount()
    return store.summary()
