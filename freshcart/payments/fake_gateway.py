"""
Passerelle de paiement simulée (développement et tests), sans appel externe.
- Configurable à chaud: succès/échec, motif, délai, statut autoritatif après capture.
- Références au format 'pay_fake_<hex>' et signatures HMAC-SHA256 (comme les webhooks Razorpay).
"""
import asyncio
from decimal import Decimal
from typing import Any, Dict, List
from uuid import uuid4

from freshcart.payments import signatures
from freshcart.payments.gateway import CaptureOutcome, Captured, Failed, PaymentGateway, PaymentStatus


class FakeGateway(PaymentGateway):
    name = "fake"

    def __init__(self, should_succeed: bool = True, failure_reason: str = "Carte refusée", delay: float = 0.0, settled: bool = True):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay = delay
        # settled=False: la capture reste 'pending' côté passerelle tant qu'aucune confirmation n'arrive
        self.settled = settled
        self.statuses: Dict[str, PaymentStatus] = {}
        self.calls: List[Dict[str, Any]] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Carte refusée", delay: float = 0.0, settled: bool = True) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay = delay
        self.settled = settled

    def set_status(self, reference: str, status: PaymentStatus) -> None:
        self.statuses[reference] = status

    async def initiate_capture(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> CaptureOutcome:
        self.calls.append({"method": "initiate_capture", "amount": amount, "currency": currency, "metadata": metadata})
        if self.delay:
            await asyncio.sleep(self.delay)
        reference = f"pay_fake_{uuid4().hex[:12]}"
        if not self.should_succeed:
            self.statuses[reference] = PaymentStatus.FAILED
            return Failed(self.failure_reason, reference)
        self.statuses[reference] = PaymentStatus.CAPTURED if self.settled else PaymentStatus.PENDING
        return Captured(reference)

    def verify_signature(self, payload: bytes, signature: str, secret: str) -> bool:
        return signatures.verify_signature(payload, signature, secret)

    async def fetch_payment_status(self, reference: str) -> PaymentStatus:
        self.calls.append({"method": "fetch_payment_status", "reference": reference})
        return self.statuses.get(reference, PaymentStatus.FAILED)
