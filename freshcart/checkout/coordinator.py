"""
Coordinateur de checkout: transforme un snapshot + un paiement confirmé en commande persistée.

Saga en trois écritures non atomiques (en-tête, lignes, retrait du panier):
- Clé d'idempotence: la référence de paiement (commande existante -> pas de ré-insertion).
- Étapes strictement sérialisées, chacune rejouée (tenacity) sur RemoteStoreError.
- Retries épuisés: la tentative est mise de côté dans `incomplete` et une alerte critique est émise.
- Après PAYMENT_CONFIRMED, l'écriture tourne dans une tâche protégée (shield):
  l'abandon de l'appelant n'interrompt pas une commande déjà payée.
- Capture provisoire non confirmée dans le délai: la tentative reste dans `unconfirmed`;
  une confirmation signée tardive (settle) la fait passer à PAYMENT_CONFIRMED puis au commit.
- Une référence soldée (commande complète, paiement refusé) quitte le registre et les verrous.
"""
import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from freshcart import config
from freshcart.cart import repository as cart_repository
from freshcart.checkout.snapshot import CheckoutSnapshot
from freshcart.checkout.state import CheckoutAttempt, CheckoutStage
from freshcart.errors import PaymentError, RemoteStoreError
from freshcart.orders import repository as orders_repository
from freshcart.payments.capture import TIMEOUT_REASON, initiate_capture
from freshcart.payments.confirmations import ConfirmationRegistry
from freshcart.payments.gateway import Failed, PaymentGateway, PaymentStatus

logger = logging.getLogger(__name__)

ORDER_INCOMPLETE = "incomplete"
ORDER_CONFIRMED = "confirmed"

Step = Callable[[CheckoutAttempt, Any], Awaitable[None]]


class CheckoutCoordinator:
    def __init__(
        self,
        gateway: PaymentGateway,
        confirmations: Optional[ConfirmationRegistry] = None,
        orders: Any = None,
        cart: Any = None,
        currency: Optional[str] = None,
        payment_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_wait: Optional[float] = None,
    ):
        self.gateway = gateway
        self.confirmations = confirmations if confirmations is not None else ConfirmationRegistry()
        self.orders = orders or orders_repository
        self.cart = cart or cart_repository
        self.currency = currency or config.CURRENCY
        self.payment_timeout = config.PAYMENT_TIMEOUT_SECONDS if payment_timeout is None else payment_timeout
        self.poll_interval = config.PAYMENT_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.max_retries = config.CHECKOUT_MAX_RETRIES if max_retries is None else max_retries
        self.retry_wait = config.CHECKOUT_RETRY_WAIT_SECONDS if retry_wait is None else retry_wait
        # Tentatives payées mais incomplètes, par référence de paiement
        self.incomplete: Dict[str, CheckoutAttempt] = {}
        # Captures provisoires sans confirmation dans le délai, en attente du webhook signé
        self.unconfirmed: Dict[str, CheckoutAttempt] = {}
        # Tentatives en cours (attente de confirmation ou commit), par référence
        self._active: Dict[str, CheckoutAttempt] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()
        self._commits: Set[asyncio.Task] = set()

    # ---- paiement --------------------------------------------------------
    async def checkout(self, snapshot: CheckoutSnapshot, store: Any = None) -> CheckoutAttempt:
        """
        Exécute une tentative complète: capture, confirmation autoritative, puis commit.
        Retour: la tentative (COMPLETE ou FAILED{failed_stage, reason}); ne relève pas d'erreur métier.
        """
        attempt = CheckoutAttempt(snapshot)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.payment_timeout
        metadata = {
            "buyer_id": snapshot.buyer_id,
            "farmer_id": snapshot.farmer_id,
            "product_ids": ",".join(snapshot.product_ids),
            "discount_code": snapshot.discount_code,
        }
        promise = initiate_capture(self.gateway, snapshot.total, self.currency, metadata, timeout=self.payment_timeout)
        attempt.advance(CheckoutStage.PAYMENT_PENDING)
        logger.info("checkout.payment_pending buyer_id=%s total=%s", snapshot.buyer_id, snapshot.total)

        outcome = await promise
        if isinstance(outcome, Failed):
            attempt.payment_reference = outcome.reference
            attempt.fail(CheckoutStage.PAYMENT_PENDING, outcome.reason)
            if outcome.reference:
                self.confirmations.forget(outcome.reference)
            logger.info("checkout.payment_failed buyer_id=%s reason=%s", snapshot.buyer_id, outcome.reason)
            return attempt

        # Succès côté client: provisoire jusqu'à confirmation signée ou relecture du statut
        reference = attempt.payment_reference = outcome.reference
        self._active[reference] = attempt
        try:
            status = await self._await_confirmation(reference, deadline)
        except asyncio.CancelledError:
            attempt.fail(CheckoutStage.PAYMENT_PENDING, TIMEOUT_REASON)
            self._keep_unconfirmed(attempt)
            if self.confirmations.get(reference) is PaymentStatus.CAPTURED:
                self._track(asyncio.ensure_future(self.settle(reference, PaymentStatus.CAPTURED, store)))
            raise
        if status is PaymentStatus.FAILED:
            attempt.fail(CheckoutStage.PAYMENT_PENDING, "Paiement refusé")
            self._active.pop(reference, None)
            self.confirmations.forget(reference)
            logger.warning("checkout.payment_refused reference=%s", reference)
            return attempt
        if status is not PaymentStatus.CAPTURED:
            attempt.fail(CheckoutStage.PAYMENT_PENDING, TIMEOUT_REASON)
            self._keep_unconfirmed(attempt)
            return attempt

        attempt.advance(CheckoutStage.PAYMENT_CONFIRMED)
        logger.info("checkout.payment_confirmed reference=%s", reference)
        return await self._start_commit(attempt, store)

    def _keep_unconfirmed(self, attempt: CheckoutAttempt) -> None:
        reference = attempt.payment_reference
        self._active.pop(reference, None)
        self.unconfirmed[reference] = attempt
        logger.warning(
            "checkout.awaiting_confirmation reference=%s buyer_id=%s total=%s",
            reference, attempt.snapshot.buyer_id, attempt.snapshot.total,
        )

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._commits.add(task)
        task.add_done_callback(self._commits.discard)
        return task

    async def _start_commit(self, attempt: CheckoutAttempt, store: Any) -> CheckoutAttempt:
        reference = attempt.payment_reference
        self._active[reference] = attempt
        task = self._track(asyncio.ensure_future(self.commit(attempt, store)))
        task.add_done_callback(lambda _: self._active.pop(reference, None))
        return await asyncio.shield(task)

    async def settle(self, reference: str, status: PaymentStatus, store: Any = None) -> Optional[CheckoutAttempt]:
        """
        Applique une confirmation signée reçue hors du flux de checkout (webhook).
        - Tentative en cours: elle lit le registre elle-même.
        - captured: reprend la tentative incomplète ou en attente de confirmation.
        - failed: abandonne la tentative en attente de confirmation.
        - captured sans tentative ni commande: alerte critique.
        Retour: la tentative reprise ou abandonnée, sinon None.
        """
        if reference in self._active:
            return None
        if status is PaymentStatus.FAILED:
            dropped = self.unconfirmed.pop(reference, None)
            if dropped is not None:
                dropped.reason = "Paiement refusé"
                logger.info("checkout.confirmation_refused reference=%s", reference)
            if reference not in self.incomplete:
                self.confirmations.forget(reference)
            return dropped
        if status is not PaymentStatus.CAPTURED:
            return None
        if reference in self.incomplete:
            return await self.resume(reference, store)
        attempt = self.unconfirmed.pop(reference, None)
        if attempt is not None:
            attempt.confirm_payment()
            logger.warning("checkout.late_confirmation reference=%s buyer_id=%s", reference, attempt.snapshot.buyer_id)
            return await self._start_commit(attempt, store)
        existing = await self.orders.find_order_by_payment_reference(reference)
        if existing:
            self.confirmations.forget(reference)
            return None
        logger.critical("checkout.orphan_capture reference=%s paiement capturé sans commande ni tentative", reference)
        return None

    def parked(self, reference: str) -> Optional[CheckoutAttempt]:
        """Tentative en attente pour la référence (commit incomplet ou confirmation tardive)."""
        return self.incomplete.get(reference) or self.unconfirmed.get(reference)

    async def _await_confirmation(self, reference: str, deadline: float) -> PaymentStatus:
        loop = asyncio.get_running_loop()
        while True:
            status = self.confirmations.get(reference)
            if status is None or not status.terminal:
                try:
                    status = await self.gateway.fetch_payment_status(reference)
                except PaymentError as e:
                    logger.warning("checkout.fetch_payment_status failed reference=%s error=%s", reference, e)
                    status = PaymentStatus.PENDING
                if status.terminal:
                    self.confirmations.record(reference, status)
            if status.terminal:
                return status
            remaining = deadline - loop.time()
            if remaining <= 0:
                # Statut signé enregistré pendant la dernière relecture
                late = self.confirmations.get(reference)
                return late if late is not None and late.terminal else PaymentStatus.PENDING
            await self.confirmations.wait(reference, min(self.poll_interval, remaining))

    # ---- commit (saga) ---------------------------------------------------
    def _lock_for(self, reference: str) -> asyncio.Lock:
        lock = self._locks.get(reference)
        if lock is None:
            lock = self._locks[reference] = asyncio.Lock()
        self._lock_users[reference] += 1
        return lock

    def _release_lock(self, reference: str) -> None:
        # Le verrou disparaît avec son dernier utilisateur (détenteur ou en attente)
        self._lock_users[reference] -= 1
        if self._lock_users[reference] <= 0:
            del self._lock_users[reference]
            self._locks.pop(reference, None)

    async def commit(self, attempt: CheckoutAttempt, store: Any = None) -> CheckoutAttempt:
        """
        Écrit la commande d'un paiement confirmé (une seule exécution à la fois par référence).
        - Rejouable: reprend à la dernière étape atteinte.
        - Échec définitif d'une étape: FAILED{étape}, tentative conservée dans `incomplete`.
        """
        reference = attempt.payment_reference
        if not reference or not attempt.has_reached(CheckoutStage.PAYMENT_CONFIRMED):
            raise RuntimeError(f"Commit sans paiement confirmé: {attempt!r}")
        lock = self._lock_for(reference)
        try:
            async with lock:
                return await self._run_stages(attempt, store)
        finally:
            self._release_lock(reference)

    async def _run_stages(self, attempt: CheckoutAttempt, store: Any) -> CheckoutAttempt:
        reference = attempt.payment_reference
        if attempt.complete:
            return attempt
        if attempt.failed:
            attempt.reopen()
        steps = (
            (CheckoutStage.ORDER_WRITTEN, self._write_order),
            (CheckoutStage.ITEMS_WRITTEN, self._write_items),
            (CheckoutStage.CART_RETIRED, self._retire_cart),
        )
        for stage, step in steps:
            if attempt.has_reached(stage):
                continue
            try:
                await self._with_retries(step, attempt, store)
            except RemoteStoreError as e:
                attempt.fail(stage, str(e))
                self.incomplete[reference] = attempt
                logger.critical(
                    "checkout.partial_commit reference=%s order_id=%s stage=%s reason=%s",
                    reference, attempt.order_id, stage.value, e,
                )
                return attempt
            attempt.advance(stage)
        attempt.advance(CheckoutStage.COMPLETE)
        self.incomplete.pop(reference, None)
        self.confirmations.forget(reference)
        logger.info("checkout.complete reference=%s order_id=%s", reference, attempt.order_id)
        return attempt

    async def resume(self, payment_reference: str, store: Any = None) -> Optional[CheckoutAttempt]:
        """Rejoue une tentative mise de côté; None si la référence n'a rien en attente."""
        attempt = self.incomplete.get(payment_reference)
        if attempt is None:
            return None
        logger.info("checkout.resume reference=%s stage=%s", payment_reference, attempt.failed_stage)
        return await self.commit(attempt, store)

    async def drain(self) -> None:
        while self._commits:
            await asyncio.gather(*list(self._commits), return_exceptions=True)

    async def _with_retries(self, step: Step, attempt: CheckoutAttempt, store: Any) -> None:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.max_retries)),
            wait=wait_exponential(multiplier=self.retry_wait, min=self.retry_wait, max=max(self.retry_wait, 10)),
            retry=retry_if_exception_type(RemoteStoreError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for try_ in retrying:
            with try_:
                await step(attempt, store)

    async def _write_order(self, attempt: CheckoutAttempt, store: Any) -> None:
        reference = attempt.payment_reference
        existing = await self.orders.find_order_by_payment_reference(reference)
        if existing:
            logger.info("checkout.order_exists reference=%s order_id=%s", reference, existing)
            attempt.order_id = existing
            return
        row = attempt.snapshot.order_row(reference, ORDER_INCOMPLETE)
        attempt.order_id = await self.orders.insert_order(row)
        logger.info("checkout.order_written reference=%s order_id=%s", reference, attempt.order_id)

    async def _write_items(self, attempt: CheckoutAttempt, store: Any) -> None:
        if not await self.orders.list_order_items(attempt.order_id):
            await self.orders.insert_order_items(attempt.order_id, attempt.snapshot.order_item_rows())
        await self.orders.update_order_status(attempt.order_id, ORDER_CONFIRMED)

    async def _retire_cart(self, attempt: CheckoutAttempt, store: Any) -> None:
        """
        Retire uniquement les articles du snapshot.
        - Panier courant entièrement couvert par le snapshot: vidage complet.
        - Articles ajoutés pendant le checkout: conservés.
        """
        snapshot = attempt.snapshot
        purchased = set(snapshot.product_ids)
        if store is not None:
            full = {e.product_id for e in store.items()} <= purchased
            await store.retire(snapshot.product_ids, full=full)
            return
        current = await self.cart.get_items(snapshot.buyer_id)
        if {e.product_id for e in current} <= purchased:
            await self.cart.clear_cart(snapshot.buyer_id)
        else:
            await self.cart.clear_items(snapshot.buyer_id, snapshot.product_ids)
