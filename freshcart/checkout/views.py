import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from freshcart.cart.sessions import CartSessions
from freshcart.cart.store import CartStore
from freshcart.cart.views import current_cart, get_cart_sessions
from freshcart.checkout.coordinator import CheckoutCoordinator
from freshcart.checkout.snapshot import build_snapshot
from freshcart.checkout.state import CheckoutAttempt
from freshcart.errors import PartialCommitError, PaymentError
from freshcart.security import require_buyer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])


class CheckoutBody(BaseModel):
    delivery_address: str
    notes: Optional[str] = None
    # Achat d'un seul article (page produit) ou d'une sélection; absent = tout le panier
    product_id: Optional[str] = None
    product_ids: Optional[List[str]] = None
    farmer_id: Optional[str] = None

    def selection(self) -> Optional[List[str]]:
        if self.product_ids:
            return self.product_ids
        if self.product_id:
            return [self.product_id]
        return None


def get_coordinator(request: Request) -> CheckoutCoordinator:
    return request.app.state.coordinator

def _respond(attempt: CheckoutAttempt, status_code: int = 201) -> JSONResponse:
    """Traduit l'issue d'une tentative: 402 paiement, 202 confirmation ou commit en attente, sinon status_code."""
    if attempt.awaiting_confirmation:
        # Débit possible: ne pas inviter l'acheteur à payer une seconde fois
        content = attempt.to_dict()
        content.update(detail="Paiement en attente de confirmation", retry=False)
        return JSONResponse(status_code=202, content=content)
    if attempt.user_retryable:
        raise PaymentError(attempt.reason or "Paiement échoué", attempt.payment_reference)
    if attempt.retryable:
        raise PartialCommitError(attempt.failed_stage.value, attempt.reason or "", attempt.payment_reference)
    return JSONResponse(status_code=status_code, content=attempt.to_dict())

# module freshcart.checkout.views
@router.get("/summary")
async def checkout_summary(
    product_id: Optional[List[str]] = Query(default=None),
    store: CartStore = Depends(current_cart),
):
    """Totaux qui seraient facturés (sous-total, remise, livraison, total) pour la sélection."""
    snapshot = build_snapshot(store, delivery_address="-", product_ids=product_id)
    return {"product_ids": snapshot.product_ids, **snapshot.totals()}

@router.post("")
async def start_checkout(
    body: CheckoutBody,
    store: CartStore = Depends(current_cart),
    coordinator: CheckoutCoordinator = Depends(get_coordinator),
):
    """
    Checkout de la sélection (ou du panier entier).
    - Snapshot pris avant le paiement; les modifications ultérieures du panier ne l'affectent pas.
    - 201: commande complète {stage, payment_reference, order_id, totals}
    - 400: validation (adresse, sélection, producteur ambigu)
    - 402: paiement refusé ou expiré (aucun débit, réessayer)
    - 202: paiement capturé mais commande incomplète (reprise automatique),
      ou capture non confirmée dans le délai (commande écrite à réception du webhook signé)
    """
    snapshot = build_snapshot(
        store,
        body.delivery_address,
        notes=body.notes,
        product_ids=body.selection(),
        farmer_id=body.farmer_id,
    )
    attempt = await coordinator.checkout(snapshot, store=store)
    logger.info(
        "checkout.views.done buyer_id=%s stage=%s reference=%s",
        snapshot.buyer_id, attempt.stage.value, attempt.payment_reference,
    )
    return _respond(attempt)

@router.post("/{payment_reference}/resume")
async def resume_checkout(
    payment_reference: str,
    buyer_id: str = Depends(require_buyer),
    sessions: CartSessions = Depends(get_cart_sessions),
    coordinator: CheckoutCoordinator = Depends(get_coordinator),
):
    """Relance l'écriture d'une commande payée restée incomplète (404 si rien en attente)."""
    pending = coordinator.incomplete.get(payment_reference)
    if pending is None or pending.snapshot.buyer_id != buyer_id:
        raise HTTPException(status_code=404, detail="Aucun checkout incomplet pour cette référence")
    store = await sessions.get(buyer_id)
    attempt = await coordinator.resume(payment_reference, store=store)
    return _respond(attempt, status_code=200)
