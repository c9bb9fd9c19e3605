"""
Cache panier d'un acheteur (une instance par session, jamais globale).

Politique:
- Mise à jour optimiste: l'effet local est appliqué avant le premier point de suspension.
- File série par panier: les jambes distantes partent dans l'ordre d'émission (asyncio.Lock FIFO),
  une réponse réseau tardive ne peut donc pas écraser une mutation plus récente.
- Réconciliation par re-fetch: en cas d'échec distant, on relit l'état autoritatif puis on rejoue
  l'effet local des mutations encore en file; jamais de compensation locale devinée.
- Totaux dérivés à la demande (jamais stockés), remise recalculée sur le sous-total courant.
"""
import asyncio
import logging
from collections import deque
from decimal import Decimal
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Tuple

from freshcart.cart import repository as cart_repository
from freshcart.cart.models import CartEntry
from freshcart.cart.mutations import AddItem, ClearCart, Mutation, RemoveItem, RetireItems, UpdateQuantity
from freshcart.discounts import Discount, discount_for, lookup
from freshcart.errors import ConcurrencyConflict, RemoteSyncError, ValidationError
from freshcart.money import ZERO, to_money

logger = logging.getLogger(__name__)

def _require_product_id(product_id: Any) -> str:
    pid = str(product_id or "").strip()
    if not pid:
        raise ValidationError("Produit manquant")
    return pid

def _require_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("La quantité doit être un entier")
    if quantity <= 0:
        raise ValidationError("La quantité doit être supérieure à 0")
    return quantity


class CartStore:
    def __init__(self, buyer_id: str, remote: Any = None):
        if not buyer_id:
            raise ValidationError("buyer_id requis")
        self.buyer_id = buyer_id
        self._remote = remote or cart_repository
        self._items: Dict[str, CartEntry] = {}
        self._discount: Optional[Discount] = None
        self._lock = asyncio.Lock()
        self._pending: Deque[Mutation] = deque()
        self._inflight: Set[asyncio.Task] = set()
        self.is_loading = False
        self.loaded = False
        self.error: Optional[str] = None

    # ---- lecture -------------------------------------------------------
    def items(self) -> List[CartEntry]:
        return list(self._items.values())

    def get(self, product_id: str) -> Optional[CartEntry]:
        return self._items.get(str(product_id))

    @property
    def discount(self) -> Optional[Discount]:
        return self._discount

    @property
    def pending(self) -> int:
        """Nombre de mutations émises dont la jambe distante n'est pas encore terminée."""
        return len(self._inflight)

    def total_items(self) -> int:
        return sum(e.quantity for e in self._items.values())

    def total_price(self) -> Decimal:
        return to_money(sum((e.line_total for e in self._items.values()), ZERO))

    def discount_amount(self) -> Decimal:
        return discount_for(self._discount, self.total_price())

    def snapshot_items(self, product_ids: Optional[Iterable[str]] = None) -> Tuple[CartEntry, ...]:
        """
        Copie figée des entrées à acheter.
        - product_ids None: tout le panier.
        - Un produit absent du panier est refusé (ValidationError).
        """
        if product_ids is None:
            return tuple(self._items.values())
        selected = []
        for pid in product_ids:
            entry = self._items.get(str(pid))
            if entry is None:
                raise ValidationError(f"Produit absent du panier: {pid}")
            selected.append(entry)
        return tuple(selected)

    # ---- remise (état local pur) ---------------------------------------
    def apply_discount(self, code: str) -> Discount:
        """Valide le code via le moteur de remise; un code inconnu laisse la remise inchangée."""
        self._discount = lookup(code)
        logger.info("cart.store.discount_applied buyer_id=%s code=%s", self.buyer_id, self._discount.code)
        return self._discount

    def remove_discount(self) -> None:
        self._discount = None

    # ---- mutations -----------------------------------------------------
    async def fetch(self) -> bool:
        """Charge l'état autoritatif (sérialisé avec les mutations en cours)."""
        self.is_loading = True
        try:
            async with self._lock:
                return await self._resync()
        finally:
            self.is_loading = False

    async def add_item(self, product_id: str, quantity: int, unit_price: Any = None, metadata: Optional[Dict[str, Any]] = None) -> bool:
        pid = _require_product_id(product_id)
        qty = _require_quantity(quantity)
        price = unit_price if unit_price is not None else (metadata or {}).get("price")
        if pid not in self._items and price is None:
            # La ligne existe peut-être côté distant: on ne peut trancher qu'avec un cache chargé
            await self._ensure_loaded()
        if pid not in self._items and price is None:
            raise ValidationError(f"Prix inconnu pour le produit {pid}")
        if price is not None and to_money(price) < ZERO:
            raise ValidationError("Le prix ne peut pas être négatif")
        return await self._submit(AddItem(pid, qty, unit_price=price, metadata=metadata))

    async def remove_item(self, product_id: str) -> bool:
        return await self._submit(RemoveItem(_require_product_id(product_id)))

    async def update_quantity(self, product_id: str, quantity: int) -> bool:
        pid = _require_product_id(product_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("La quantité doit être un entier")
        if quantity <= 0:
            return await self.remove_item(pid)
        return await self._submit(UpdateQuantity(pid, quantity))

    async def clear_cart(self) -> bool:
        return await self._submit(ClearCart())

    async def retire(self, product_ids: Iterable[str], full: bool = False) -> bool:
        """
        Retrait des entrées achetées (réservé au coordinateur de checkout).
        - Passe par la même file que les actions utilisateur.
        - Relève RemoteSyncError après re-synchronisation: le coordinateur décide du retry.
        """
        return await self._submit(RetireItems(product_ids, full=full))

    async def drain(self) -> None:
        """Attend la fin de toutes les jambes distantes en vol."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ---- interne ---------------------------------------------------------
    async def _ensure_loaded(self) -> None:
        """Cache jamais chargé: une quantité absolue écraserait la ligne distante."""
        if not self.loaded and not await self.fetch():
            raise RemoteSyncError(f"Panier non chargé pour {self.buyer_id}: {self.error}")

    async def _submit(self, mutation: Mutation) -> bool:
        await self._ensure_loaded()
        mutation.apply(self._items)
        self._pending.append(mutation)
        # La jambe distante vit dans sa propre tâche: annuler l'appelant ne la retire pas de la file
        task = asyncio.ensure_future(self._run(mutation))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _run(self, mutation: Mutation) -> bool:
        async with self._lock:
            head = self._pending.popleft() if self._pending else None
            if head is not mutation:
                raise ConcurrencyConflict(f"Mutation hors ordre: attendu {head!r}, reçu {mutation!r}")
            try:
                await mutation.send(self._remote, self.buyer_id)
            except RemoteSyncError as e:
                logger.warning(
                    "cart.store.remote_failed buyer_id=%s mutation=%s error=%s",
                    self.buyer_id, mutation.name, e,
                )
                self.error = str(e)
                await self._resync()
                if mutation.propagate:
                    raise
                return False
            return True

    async def _resync(self) -> bool:
        try:
            entries = await self._remote.get_items(self.buyer_id)
        except RemoteSyncError as e:
            logger.warning("cart.store.resync_failed buyer_id=%s error=%s", self.buyer_id, e)
            self.error = str(e)
            return False
        items: Dict[str, CartEntry] = {e.product_id: e for e in entries}
        for queued in self._pending:
            queued.apply(items)
        self._items = items
        self.loaded = True
        logger.info("cart.store.resync buyer_id=%s items=%s replayed=%s", self.buyer_id, len(items), len(self._pending))
        return True

    def summary(self) -> Dict[str, Any]:
        subtotal = self.total_price()
        return {
            "buyer_id": self.buyer_id,
            "items": [
                {
                    "product_id": e.product_id,
                    "quantity": e.quantity,
                    "unit_price": str(e.unit_price),
                    "line_total": str(e.line_total),
                    "product": e.metadata,
                }
                for e in self._items.values()
            ],
            "total_items": self.total_items(),
            "subtotal": str(subtotal),
            "discount": self._discount.code if self._discount else None,
            "discount_amount": str(self.discount_amount()),
            "error": self.error,
        }
