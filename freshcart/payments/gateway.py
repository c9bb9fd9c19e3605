"""
Port de la passerelle de paiement (contrat commun aux adaptateurs fake/stripe).

- initiate_capture: demande de capture; le succès observé côté client reste provisoire.
- verify_signature: authentifie un canal serveur-à-serveur (webhook).
- fetch_payment_status: relecture autoritative du statut d'un paiement.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class PaymentStatus(str, Enum):
    CAPTURED = "captured"
    PENDING = "pending"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


@dataclass(frozen=True)
class Captured:
    reference: str


@dataclass(frozen=True)
class Failed:
    reason: str
    reference: Optional[str] = None


CaptureOutcome = Union[Captured, Failed]


class PaymentGateway(ABC):
    name = "gateway"

    @abstractmethod
    async def initiate_capture(self, amount: Decimal, currency: str, metadata: Dict[str, Any]) -> CaptureOutcome:
        ...

    @abstractmethod
    def verify_signature(self, payload: bytes, signature: str, secret: str) -> bool:
        ...

    @abstractmethod
    async def fetch_payment_status(self, reference: str) -> PaymentStatus:
        ...
