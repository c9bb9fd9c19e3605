"""
Lecture des notifications de paiement (webhooks) déjà authentifiées.

Formats reconnus:
- Razorpay: {"event": "payment.captured" | "payment.failed", "payload": {"payment": {"entity": {"id": ...}}}}
- Stripe: {"type": "payment_intent.succeeded" | "payment_intent.payment_failed", "data": {"object": {"id": ...}}}
Tout autre événement est ignoré (None).
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from freshcart.errors import ValidationError
from freshcart.payments.gateway import PaymentStatus

SIGNATURE_HEADERS = ("X-Payment-Signature", "X-Razorpay-Signature", "Stripe-Signature")

EVENT_STATUSES = {
    "payment.captured": PaymentStatus.CAPTURED,
    "payment.failed": PaymentStatus.FAILED,
    "payment_intent.succeeded": PaymentStatus.CAPTURED,
    "payment_intent.payment_failed": PaymentStatus.FAILED,
    "payment_intent.canceled": PaymentStatus.FAILED,
}


@dataclass(frozen=True)
class PaymentEvent:
    kind: str
    reference: str
    status: PaymentStatus


def signature_from_headers(headers: Any) -> str:
    for name in SIGNATURE_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return ""

def _reference(body: Dict[str, Any]) -> str:
    if "payload" in body:
        entity = ((body.get("payload") or {}).get("payment") or {}).get("entity") or {}
        return str(entity.get("id") or "")
    obj = (body.get("data") or {}).get("object") or {}
    return str(obj.get("id") or "")

def parse_event(payload: Union[bytes, str]) -> Optional[PaymentEvent]:
    try:
        body = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Payload webhook invalide: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Payload webhook invalide")
    kind = str(body.get("event") or body.get("type") or "")
    status = EVENT_STATUSES.get(kind)
    if status is None:
        return None
    reference = _reference(body)
    if not reference:
        raise ValidationError(f"Référence de paiement absente ({kind})")
    return PaymentEvent(kind=kind, reference=reference, status=status)
