"""
Registre des CartStore par acheteur (porté par app.state, jamais global au module).
- get(): crée le store au premier accès puis le charge depuis Supabase.
- drain_all(): attend les jambes distantes en vol (arrêt propre du lifespan).
"""
import asyncio
import logging
from typing import Any, Dict

from freshcart.cart import repository as cart_repository
from freshcart.cart.store import CartStore

logger = logging.getLogger(__name__)


class CartSessions:
    def __init__(self, remote: Any = None):
        self._remote = remote or cart_repository
        self._stores: Dict[str, CartStore] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, buyer_id: str) -> bool:
        return buyer_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    async def get(self, buyer_id: str) -> CartStore:
        async with self._lock:
            store = self._stores.get(buyer_id)
            if store is None:
                store = CartStore(buyer_id, remote=self._remote)
                self._stores[buyer_id] = store
                logger.info("cart.sessions.open buyer_id=%s", buyer_id)
        if not store.loaded:
            await store.fetch()
        return store

    async def close(self, buyer_id: str) -> None:
        store = self._stores.pop(buyer_id, None)
        if store is not None:
            await store.drain()

    async def drain_all(self) -> None:
        for store in list(self._stores.values()):
            await store.drain()
