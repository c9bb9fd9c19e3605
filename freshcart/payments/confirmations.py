"""
Registre des confirmations autoritatives reçues par webhook signé.
- Le premier statut terminal (captured/failed) d'une référence est définitif.
- Les coordinateurs en attente sur une référence sont réveillés à chaque enregistrement.
- forget(): une référence soldée (commande écrite ou paiement refusé) quitte le registre.
"""
import asyncio
import logging
from typing import Dict, Optional

from freshcart.payments.gateway import PaymentStatus

logger = logging.getLogger(__name__)


class ConfirmationRegistry:
    def __init__(self) -> None:
        self._statuses: Dict[str, PaymentStatus] = {}
        self._events: Dict[str, asyncio.Event] = {}

    def _event(self, reference: str) -> asyncio.Event:
        event = self._events.get(reference)
        if event is None:
            event = self._events[reference] = asyncio.Event()
        return event

    def get(self, reference: str) -> Optional[PaymentStatus]:
        return self._statuses.get(reference)

    def record(self, reference: str, status: PaymentStatus) -> bool:
        current = self._statuses.get(reference)
        if current is not None and current.terminal:
            if current is not status:
                logger.warning(
                    "payments.confirmations.conflict reference=%s kept=%s ignored=%s",
                    reference, current.value, status.value,
                )
            return False
        self._statuses[reference] = status
        logger.info("payments.confirmations.record reference=%s status=%s", reference, status.value)
        event = self._events.pop(reference, None)
        if event is not None:
            event.set()
        return True

    def forget(self, reference: str) -> None:
        self._statuses.pop(reference, None)
        event = self._events.pop(reference, None)
        if event is not None:
            event.set()

    async def wait(self, reference: str, timeout: float) -> Optional[PaymentStatus]:
        """Attend un nouvel enregistrement pour la référence (au plus timeout secondes)."""
        if timeout > 0:
            event = self._event(reference)
            try:
                await asyncio.wait_for(event.wait(), timeout)
            except asyncio.TimeoutError:
                pass
            finally:
                # Attente expirée ou annulée: l'événement ne survit pas à son attente
                if self._events.get(reference) is event:
                    del self._events[reference]
        return self.get(reference)
