import logging
from typing import Any, Dict
from urllib.parse import urlparse

import freshcart.infra.supabase_client as supabase_client
from freshcart.config import SUPABASE_URL

logger = logging.getLogger(__name__)

TABLES = ("cart_items", "orders", "order_items")

async def _check_table(client, table: str) -> Dict[str, Any]:
    try:
        res = await client.table(table).select("*").limit(1).execute()
        return {"ok": True, "rows": len(res.data or [])}
    except Exception as e:
        return {"ok": False, "error": str(e)}

async def health_supabase_info() -> Dict[str, Any]:
    """
    Diagnostic de connexion Supabase (client anon).
    - Une entrée par table du pipeline: accessible ou message d'erreur.
    """
    parsed = urlparse(SUPABASE_URL) if SUPABASE_URL else None
    info: Dict[str, Any] = {
        "supabase_url": SUPABASE_URL,
        "hostname": parsed.hostname if parsed else None,
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = await supabase_client.get_supabase()
        for table in TABLES:
            info["tables"][table] = await _check_table(client, table)
        info["connect_ok"] = True
    except Exception as e:
        logger.warning("health.supabase failed error=%s", e)
        info["error"] = str(e)
    return info
