"""
Promesse de capture: un seul résultat terminal par tentative de checkout.
- Résolue exactement une fois (les résolutions suivantes sont ignorées).
- Jamais d'attente infinie: Failed("Timeout") après le délai borné.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from freshcart.errors import PaymentError
from freshcart.payments.gateway import CaptureOutcome, Failed, PaymentGateway

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "Timeout"


class CapturePromise:
    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._task: Optional[asyncio.Task] = None

    def resolve(self, outcome: CaptureOutcome) -> bool:
        """Fixe le résultat; retourne False si la promesse était déjà résolue."""
        if self._future.done():
            logger.warning("payments.capture.double_resolution ignored=%s", outcome)
            return False
        self._future.set_result(outcome)
        return True

    def done(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> Optional[CaptureOutcome]:
        return self._future.result() if self._future.done() else None

    def __await__(self):
        # shield: l'annulation d'un appelant ne résout pas la promesse
        return asyncio.shield(self._future).__await__()


def initiate_capture(
    gateway: PaymentGateway,
    amount: Decimal,
    currency: str,
    metadata: Optional[Dict[str, Any]] = None,
    timeout: float = 120.0,
) -> CapturePromise:
    """
    Lance la capture en tâche de fond et retourne immédiatement la promesse.
    - Erreur adaptateur -> Failed(reason)
    - Délai dépassé -> Failed("Timeout")
    """
    promise = CapturePromise()

    async def _run() -> None:
        try:
            outcome = await asyncio.wait_for(
                gateway.initiate_capture(amount, currency, dict(metadata or {})),
                timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("payments.capture.timeout gateway=%s amount=%s timeout=%s", gateway.name, amount, timeout)
            outcome = Failed(TIMEOUT_REASON)
        except PaymentError as e:
            outcome = Failed(e.reason, e.payment_reference)
        except Exception as e:
            logger.exception("payments.capture failed gateway=%s amount=%s", gateway.name, amount)
            outcome = Failed(str(e) or e.__class__.__name__)
        promise.resolve(outcome)

    promise._task = asyncio.ensure_future(_run())
    return promise
