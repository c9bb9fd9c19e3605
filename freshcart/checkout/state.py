"""
Machine d'état d'une tentative de checkout.

INITIATED -> PAYMENT_PENDING -> PAYMENT_CONFIRMED -> ORDER_WRITTEN -> ITEMS_WRITTEN -> CART_RETIRED -> COMPLETE
FAILED{failed_stage, reason} est atteignable depuis tout état non terminal.
- Échec à ORDER_WRITTEN / ITEMS_WRITTEN / CART_RETIRED: rejouable automatiquement (clé = référence de paiement).
- Échec à PAYMENT_PENDING: aucun débit, l'utilisateur peut recommencer.
- Sauf capture vue côté client mais non confirmée à temps (awaiting_confirmation): le débit est
  possible, la tentative attend la confirmation signée (confirm_payment) au lieu d'être abandonnée.
"""
from enum import Enum
from typing import List, Optional, Tuple

from freshcart.checkout.snapshot import CheckoutSnapshot
from freshcart.payments.capture import TIMEOUT_REASON


class CheckoutStage(str, Enum):
    INITIATED = "initiated"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ORDER_WRITTEN = "order_written"
    ITEMS_WRITTEN = "items_written"
    CART_RETIRED = "cart_retired"
    COMPLETE = "complete"
    FAILED = "failed"


SEQUENCE: Tuple[CheckoutStage, ...] = (
    CheckoutStage.INITIATED,
    CheckoutStage.PAYMENT_PENDING,
    CheckoutStage.PAYMENT_CONFIRMED,
    CheckoutStage.ORDER_WRITTEN,
    CheckoutStage.ITEMS_WRITTEN,
    CheckoutStage.CART_RETIRED,
    CheckoutStage.COMPLETE,
)
RETRYABLE = frozenset({CheckoutStage.ORDER_WRITTEN, CheckoutStage.ITEMS_WRITTEN, CheckoutStage.CART_RETIRED})


class CheckoutAttempt:
    def __init__(self, snapshot: CheckoutSnapshot, payment_reference: Optional[str] = None):
        self.snapshot = snapshot
        self.payment_reference = payment_reference
        self.order_id: Optional[str] = None
        self.stage = CheckoutStage.INITIATED
        # Dernière étape atteinte avec succès (inchangée par un échec)
        self.reached = CheckoutStage.INITIATED
        self.failed_stage: Optional[CheckoutStage] = None
        self.reason: Optional[str] = None
        self.history: List[CheckoutStage] = [CheckoutStage.INITIATED]

    def __repr__(self) -> str:
        return f"<CheckoutAttempt ref={self.payment_reference} stage={self.stage.value} failed={self.failed_stage}>"

    @property
    def failed(self) -> bool:
        return self.stage is CheckoutStage.FAILED

    @property
    def complete(self) -> bool:
        return self.stage is CheckoutStage.COMPLETE

    @property
    def retryable(self) -> bool:
        """Échec post-paiement: à rejouer automatiquement, jamais à abandonner."""
        return self.failed and self.failed_stage in RETRYABLE

    @property
    def awaiting_confirmation(self) -> bool:
        """Capture provisoire (référence connue) dont la confirmation n'est pas arrivée dans le délai."""
        return (
            self.failed
            and self.failed_stage is CheckoutStage.PAYMENT_PENDING
            and self.reached is CheckoutStage.PAYMENT_PENDING
            and self.payment_reference is not None
            and self.reason == TIMEOUT_REASON
        )

    @property
    def user_retryable(self) -> bool:
        """Échec avant confirmation du paiement: aucun débit, l'utilisateur peut recommencer."""
        if self.awaiting_confirmation:
            return False
        return self.failed and self.failed_stage in (CheckoutStage.INITIATED, CheckoutStage.PAYMENT_PENDING)

    def has_reached(self, stage: CheckoutStage) -> bool:
        return SEQUENCE.index(self.reached) >= SEQUENCE.index(stage)

    def advance(self, stage: CheckoutStage) -> None:
        if self.stage is CheckoutStage.FAILED or stage is CheckoutStage.FAILED:
            raise RuntimeError(f"Transition interdite: {self.stage.value} -> {stage.value}")
        position = SEQUENCE.index(self.stage)
        if position + 1 >= len(SEQUENCE) or SEQUENCE[position + 1] is not stage:
            raise RuntimeError(f"Transition interdite: {self.stage.value} -> {stage.value}")
        self.stage = self.reached = stage
        self.history.append(stage)

    def fail(self, stage: CheckoutStage, reason: str) -> None:
        if self.stage in (CheckoutStage.COMPLETE, CheckoutStage.FAILED):
            raise RuntimeError(f"Transition interdite: {self.stage.value} -> failed")
        self.stage = CheckoutStage.FAILED
        self.failed_stage = stage
        self.reason = reason
        self.history.append(CheckoutStage.FAILED)

    def reopen(self) -> None:
        """Reprend une tentative rejouable à sa dernière étape atteinte."""
        if not self.retryable:
            raise RuntimeError(f"Tentative non rejouable: {self!r}")
        self.stage = self.reached
        self.failed_stage = None
        self.reason = None
        self.history.append(self.reached)

    def confirm_payment(self) -> None:
        """Confirmation autoritative tardive: reprend à PAYMENT_PENDING puis passe à PAYMENT_CONFIRMED."""
        if not self.awaiting_confirmation:
            raise RuntimeError(f"Aucune capture en attente de confirmation: {self!r}")
        self.stage = CheckoutStage.PAYMENT_PENDING
        self.failed_stage = None
        self.reason = None
        self.history.append(CheckoutStage.PAYMENT_PENDING)
        self.advance(CheckoutStage.PAYMENT_CONFIRMED)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "reason": self.reason,
            "payment_reference": self.payment_reference,
            "order_id": self.order_id,
            "retryable": self.retryable,
            "awaiting_confirmation": self.awaiting_confirmation,
            "totals": self.snapshot.totals(),
        }
