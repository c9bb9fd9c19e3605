from fastapi import APIRouter, Depends, HTTPException, Request

from freshcart.security import require_buyer

router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])

# module freshcart.orders.views
@router.get("/by-payment/{payment_reference}")
async def order_by_payment(payment_reference: str, request: Request, buyer_id: str = Depends(require_buyer)):
    """
    Commande (en-tête + lignes) associée à une référence de paiement.
    - 404 si aucune commande, ou commande d'un autre acheteur.
    """
    orders = request.app.state.coordinator.orders
    order_id = await orders.find_order_by_payment_reference(payment_reference)
    order = await orders.get_order(order_id) if order_id else None
    if not order or str(order.get("buyer_id")) != buyer_id:
        raise HTTPException(status_code=404, detail="Commande introuvable")
    return order
