"""
Lifespan FastAPI: construction et arrêt des ressources partagées (app.state).
- gateway: passerelle de paiement choisie par PAYMENT_GATEWAY
- confirmations: registre des confirmations webhook
- coordinator: coordinateur de checkout (tentatives incomplètes incluses)
- cart_sessions: un CartStore par acheteur
Les tests peuvent préremplir app.state (gateway, coordinator, cart_sessions) avant le démarrage.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from freshcart import config
from freshcart.cart.sessions import CartSessions
from freshcart.checkout.coordinator import CheckoutCoordinator
from freshcart.payments import ConfirmationRegistry, build_gateway

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("uvicorn.error")
    state = app.state
    if getattr(state, "gateway", None) is None:
        state.gateway = build_gateway()
    if getattr(state, "webhook_secret", None) is None:
        state.webhook_secret = config.PAYMENT_WEBHOOK_SECRET
    if not state.webhook_secret:
        logger.warning("PAYMENT_WEBHOOK_SECRET absent: toutes les notifications webhook seront refusées")
    if getattr(state, "coordinator", None) is None:
        state.coordinator = CheckoutCoordinator(state.gateway, ConfirmationRegistry())
    state.confirmations = state.coordinator.confirmations
    if getattr(state, "cart_sessions", None) is None:
        state.cart_sessions = CartSessions()
    logger.info("Checkout ready gateway=%s currency=%s", state.gateway.name, state.coordinator.currency)

    yield

    # Les commandes payées en cours d'écriture doivent aboutir avant l'arrêt
    await state.coordinator.drain()
    await state.cart_sessions.drain_all()
    if state.coordinator.incomplete:
        logger.critical("Arrêt avec %s checkout(s) incomplet(s): %s", len(state.coordinator.incomplete), list(state.coordinator.incomplete))
    if state.coordinator.unconfirmed:
        logger.critical(
            "Arrêt avec %s capture(s) sans confirmation: %s",
            len(state.coordinator.unconfirmed), list(state.coordinator.unconfirmed),
        )
