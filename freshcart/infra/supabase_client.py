from typing import Optional
from supabase import acreate_client, AsyncClient
from freshcart.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[AsyncClient] = None
_service_supabase: Optional[AsyncClient] = None

async def get_supabase() -> AsyncClient:
    global _supabase
    if _supabase is None:
        _supabase = await acreate_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase

async def get_service_supabase() -> AsyncClient:
    """
    Client service-role (bypass RLS): écritures serveur du panier et des commandes.
    Le checkout écrit au nom de l'acheteur après confirmation du paiement, hors session navigateur.
    """
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = await acreate_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase
