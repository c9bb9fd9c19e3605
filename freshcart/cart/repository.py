"""
Accès aux données pour la feature 'cart' (table cart_items).
- Une ligne par (buyer_id, product_id): contrainte unique côté base.
- Écritures idempotentes: l'ajout envoie la quantité absolue (upsert), les suppressions sont rejouables.
- Toute erreur client/API est journalisée puis relevée en RemoteSyncError (le store re-synchronise).
"""
from typing import Iterable, List
import logging

import freshcart.infra.supabase_client as supabase_client
from freshcart.cart.models import CartEntry, entry_from_row
from freshcart.errors import RemoteSyncError

logger = logging.getLogger(__name__)

TABLE = "cart_items"
SELECT_COLUMNS = "product_id, quantity, unit_price, product, products(id, title, price, unit, photos, farmer_id)"

# module freshcart.cart.repository
async def get_items(buyer_id: str) -> List[CartEntry]:
    """
    Panier autoritatif d'un acheteur, trié du plus ancien au plus récent.
    - Ignore les lignes inexploitables (cf. entry_from_row).
    """
    try:
        client = await supabase_client.get_service_supabase()
        res = await (
            client.table(TABLE)
            .select(SELECT_COLUMNS)
            .eq("buyer_id", buyer_id)
            .order("created_at")
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.get_items failed buyer_id=%s", buyer_id)
        raise RemoteSyncError(f"Lecture du panier impossible: {e}") from e
    entries = [entry_from_row(row) for row in res.data or []]
    return [e for e in entries if e is not None]

async def add_item(buyer_id: str, entry: CartEntry) -> None:
    """Upsert de la ligne avec la quantité absolue résultante."""
    try:
        client = await supabase_client.get_service_supabase()
        await (
            client.table(TABLE)
            .upsert(entry.to_row(buyer_id), on_conflict="buyer_id,product_id")
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.add_item failed buyer_id=%s product_id=%s", buyer_id, entry.product_id)
        raise RemoteSyncError(f"Ajout au panier impossible: {e}") from e

async def update_quantity(buyer_id: str, product_id: str, quantity: int) -> None:
    if quantity <= 0:
        await remove_item(buyer_id, product_id)
        return
    try:
        client = await supabase_client.get_service_supabase()
        await (
            client.table(TABLE)
            .update({"quantity": quantity})
            .eq("buyer_id", buyer_id)
            .eq("product_id", product_id)
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.update_quantity failed buyer_id=%s product_id=%s", buyer_id, product_id)
        raise RemoteSyncError(f"Mise à jour du panier impossible: {e}") from e

async def remove_item(buyer_id: str, product_id: str) -> None:
    try:
        client = await supabase_client.get_service_supabase()
        await (
            client.table(TABLE)
            .delete()
            .eq("buyer_id", buyer_id)
            .eq("product_id", product_id)
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.remove_item failed buyer_id=%s product_id=%s", buyer_id, product_id)
        raise RemoteSyncError(f"Suppression du panier impossible: {e}") from e

async def clear_cart(buyer_id: str) -> None:
    try:
        client = await supabase_client.get_service_supabase()
        await client.table(TABLE).delete().eq("buyer_id", buyer_id).execute()
    except Exception as e:
        logger.exception("cart.repository.clear_cart failed buyer_id=%s", buyer_id)
        raise RemoteSyncError(f"Vidage du panier impossible: {e}") from e

async def clear_items(buyer_id: str, product_ids: Iterable[str]) -> None:
    """Retire uniquement les produits donnés (checkout partiel d'un panier plus large)."""
    ids = [str(p) for p in product_ids]
    if not ids:
        return
    try:
        client = await supabase_client.get_service_supabase()
        await (
            client.table(TABLE)
            .delete()
            .eq("buyer_id", buyer_id)
            .in_("product_id", ids)
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.clear_items failed buyer_id=%s product_ids=%s", buyer_id, ids)
        raise RemoteSyncError(f"Retrait des articles impossible: {e}") from e
