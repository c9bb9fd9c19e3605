"""
Client de passerelle de paiement.

Choix de l'adaptateur via PAYMENT_GATEWAY:
- "fake": FakeGateway (développement, tests)
- "stripe": StripeGateway (production, STRIPE_SECRET_KEY et STRIPE_PAYMENT_METHOD requis)
"""
import logging

from freshcart import config
from freshcart.payments.capture import CapturePromise, initiate_capture
from freshcart.payments.confirmations import ConfirmationRegistry
from freshcart.payments.fake_gateway import FakeGateway
from freshcart.payments.gateway import Captured, Failed, PaymentGateway, PaymentStatus

logger = logging.getLogger(__name__)

def build_gateway(kind: str = None) -> PaymentGateway:
    kind = (kind or config.PAYMENT_GATEWAY or "fake").lower()
    if kind == "stripe":
        from freshcart.payments.stripe_gateway import StripeGateway

        if not config.STRIPE_SECRET_KEY:
            raise RuntimeError("STRIPE_SECRET_KEY manquant pour PAYMENT_GATEWAY=stripe")
        if not config.STRIPE_PAYMENT_METHOD:
            raise RuntimeError("STRIPE_PAYMENT_METHOD manquant pour PAYMENT_GATEWAY=stripe")
        return StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_PAYMENT_METHOD)
    if kind != "fake":
        raise RuntimeError(f"PAYMENT_GATEWAY inconnu: {kind}")
    logger.warning("payments.gateway using FakeGateway (aucun débit réel)")
    return FakeGateway()

__all__ = [
    "CapturePromise",
    "Captured",
    "ConfirmationRegistry",
    "Failed",
    "FakeGateway",
    "PaymentGateway",
    "PaymentStatus",
    "build_gateway",
    "initiate_capture",
]
