import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from freshcart.payments.gateway import PaymentStatus
from freshcart.payments.webhook import parse_event, signature_from_headers

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module freshcart.payments.views
@router.post("/webhook", include_in_schema=False)
async def payment_webhook(request: Request):
    """
    Confirmation serveur-à-serveur d'un paiement (source autoritative).
    - Signature: X-Payment-Signature, X-Razorpay-Signature ou Stripe-Signature,
      vérifiée par la passerelle active avec PAYMENT_WEBHOOK_SECRET
    - Enregistre le statut dans le registre des confirmations (réveille le coordinateur en attente)
    - Paiement capturé d'un checkout incomplet ou resté sans confirmation: relance l'écriture de la commande
    - Paiement capturé sans commande ni tentative connue: alerte critique
    - Réponses: {"status": "ok", ...} ou {"status": "ignored"}; 400 si signature/payload invalide
    """
    state = request.app.state
    payload = await request.body()
    signature = signature_from_headers(request.headers)
    if not state.gateway.verify_signature(payload, signature, state.webhook_secret):
        logger.warning("payments.webhook invalid signature gateway=%s", state.gateway.name)
        raise HTTPException(status_code=400, detail="Signature webhook invalide")

    event = parse_event(payload)
    if event is None:
        return JSONResponse({"status": "ignored"})

    recorded = state.confirmations.record(event.reference, event.status)
    result = {"status": "ok", "reference": event.reference, "payment_status": event.status.value, "recorded": recorded}
    store = None
    parked = state.coordinator.parked(event.reference)
    if event.status is PaymentStatus.CAPTURED and parked is not None:
        # Le retrait du panier passe par la session de l'acheteur si elle est ouverte
        buyer_id = parked.snapshot.buyer_id
        if buyer_id in state.cart_sessions:
            store = await state.cart_sessions.get(buyer_id)
    attempt = await state.coordinator.settle(event.reference, event.status, store=store)
    if attempt is not None:
        result["checkout_stage"] = attempt.stage.value
    logger.info("payments.webhook kind=%s reference=%s recorded=%s", event.kind, event.reference, recorded)
    return JSONResponse(result)
