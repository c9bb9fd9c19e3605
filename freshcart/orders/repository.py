"""
Accès aux données pour la feature 'orders' (tables orders, order_items).
- La référence de paiement est unique par commande: clé d'idempotence du checkout.
- Toute erreur client/API est journalisée puis relevée en OrderWriteError (rejouée par le coordinateur).
"""
from typing import Any, Dict, List, Optional
import logging

import freshcart.infra.supabase_client as supabase_client
from freshcart.errors import OrderWriteError

logger = logging.getLogger(__name__)

ORDERS = "orders"
ORDER_ITEMS = "order_items"
ORDER_COLUMNS = "id, buyer_id, farmer_id, total_price, delivery_address, payment_reference, notes, status, created_at"

# module freshcart.orders.repository
async def insert_order(row: Dict[str, Any]) -> str:
    """Insère l'en-tête de commande et retourne son id."""
    try:
        client = await supabase_client.get_service_supabase()
        res = await client.table(ORDERS).insert(row).execute()
    except Exception as e:
        logger.exception("orders.repository.insert_order failed payment_reference=%s", row.get("payment_reference"))
        raise OrderWriteError(f"Création de la commande impossible: {e}") from e
    data = res.data or []
    if not data or not data[0].get("id"):
        raise OrderWriteError("Création de la commande: id manquant dans la réponse")
    return str(data[0]["id"])

async def find_order_by_payment_reference(payment_reference: str) -> Optional[str]:
    try:
        client = await supabase_client.get_service_supabase()
        res = await (
            client.table(ORDERS)
            .select("id")
            .eq("payment_reference", payment_reference)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.find_order_by_payment_reference failed payment_reference=%s", payment_reference)
        raise OrderWriteError(f"Recherche de la commande impossible: {e}") from e
    data = res.data or []
    return str(data[0]["id"]) if data else None

async def insert_order_items(order_id: str, items: List[Dict[str, Any]]) -> None:
    """Insertion groupée des lignes (une seule requête: tout ou rien côté coordinateur)."""
    rows = [{**item, "order_id": order_id} for item in items]
    try:
        client = await supabase_client.get_service_supabase()
        await client.table(ORDER_ITEMS).insert(rows).execute()
    except Exception as e:
        logger.exception("orders.repository.insert_order_items failed order_id=%s count=%s", order_id, len(rows))
        raise OrderWriteError(f"Création des lignes de commande impossible: {e}") from e

async def list_order_items(order_id: str) -> List[Dict[str, Any]]:
    try:
        client = await supabase_client.get_service_supabase()
        res = await (
            client.table(ORDER_ITEMS)
            .select("order_id, product_id, quantity, price_per_unit, total_price")
            .eq("order_id", order_id)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.list_order_items failed order_id=%s", order_id)
        raise OrderWriteError(f"Lecture des lignes de commande impossible: {e}") from e
    return res.data or []

async def update_order_status(order_id: str, status: str) -> None:
    try:
        client = await supabase_client.get_service_supabase()
        await client.table(ORDERS).update({"status": status}).eq("id", order_id).execute()
    except Exception as e:
        logger.exception("orders.repository.update_order_status failed order_id=%s status=%s", order_id, status)
        raise OrderWriteError(f"Mise à jour du statut impossible: {e}") from e

async def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    """
    Commande complète (en-tête + lignes), telle que lue par la génération de facture.
    Retour: None si la commande n'existe pas.
    """
    try:
        client = await supabase_client.get_service_supabase()
        res = await client.table(ORDERS).select(ORDER_COLUMNS).eq("id", order_id).limit(1).execute()
    except Exception as e:
        logger.exception("orders.repository.get_order failed order_id=%s", order_id)
        raise OrderWriteError(f"Lecture de la commande impossible: {e}") from e
    data = res.data or []
    if not data:
        return None
    order = dict(data[0])
    order["items"] = await list_order_items(order_id)
    return order
