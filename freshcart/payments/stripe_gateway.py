"""
Adaptateur Stripe (PaymentIntent) de la passerelle de paiement.
- Le SDK stripe est bloquant: chaque appel part dans un thread (asyncio.to_thread).
- Montants envoyés en unités mineures (centimes/paise).
- Signatures: en-tête Stripe-Signature validé par stripe.WebhookSignature.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict

import stripe

from freshcart.errors import PaymentError
from freshcart.payments.gateway import CaptureOutcome, Captured, Failed, PaymentGateway, PaymentStatus

logger = logging.getLogger(__name__)

# Statuts PaymentIntent -> statut autoritatif
STATUS_MAP = {
    "succeeded": PaymentStatus.CAPTURED,
    "canceled": PaymentStatus.FAILED,
    "requires_payment_method": PaymentStatus.FAILED,
}
# Statuts acceptés comme capture provisoire côté client
PROVISIONAL = {"succeeded", "processing", "requires_capture"}

def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())

def _metadata(metadata: Dict[str, Any]) -> Dict[str, str]:
    # Stripe n'accepte que des valeurs chaînes
    return {str(k): str(v) for k, v in (metadata or {}).items() if v is not None}


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, api_key: str, payment_method: str):
        if not payment_method:
            raise ValueError("payment_method requis pour StripeGateway")
        self.api_key = api_key
        self.payment_method = payment_method

    def require_stripe(self):
        """Configure stripe.api_key; sans clé, les appels échouent côté SDK."""
        if self.api_key:
            stripe.api_key = self.api_key
        return stripe

    async def initiate_capture(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> CaptureOutcome:
        sdk = self.require_stripe()
        metadata = dict(metadata or {})
        # Un moyen de paiement fourni par la capture remplace celui du compte
        payment_method = metadata.pop("payment_method", None) or self.payment_method
        try:
            intent = await asyncio.to_thread(
                sdk.PaymentIntent.create,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata=_metadata(metadata),
                payment_method=payment_method,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            )
        except stripe.CardError as e:
            logger.info("payments.stripe.card_declined code=%s", getattr(e, "code", None))
            return Failed(e.user_message or str(e))
        except stripe.StripeError as e:
            logger.exception("payments.stripe.initiate_capture failed amount=%s", amount)
            raise PaymentError(str(e)) from e
        status = getattr(intent, "status", None)
        if status in PROVISIONAL:
            return Captured(intent.id)
        error = getattr(intent, "last_payment_error", None)
        message = getattr(error, "message", None) if error else None
        return Failed(message or f"Statut Stripe: {status}", intent.id)

    def verify_signature(self, payload: bytes, signature: str, secret: str) -> bool:
        if not secret or not signature:
            return False
        try:
            stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance=300)
        except (stripe.SignatureVerificationError, ValueError):
            return False
        return True

    async def fetch_payment_status(self, reference: str) -> PaymentStatus:
        sdk = self.require_stripe()
        try:
            intent = await asyncio.to_thread(sdk.PaymentIntent.retrieve, reference)
        except stripe.StripeError as e:
            logger.warning("payments.stripe.fetch_payment_status failed reference=%s error=%s", reference, e)
            raise PaymentError(str(e), reference) from e
        return STATUS_MAP.get(getattr(intent, "status", None), PaymentStatus.PENDING)
