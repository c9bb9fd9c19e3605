from fastapi import Header, HTTPException

BUYER_HEADER = "X-Buyer-Id"

def require_buyer(x_buyer_id: str = Header(default="", alias=BUYER_HEADER)) -> str:
    """
    Identité de l'acheteur transmise par la couche d'authentification amont.
    - 401 si l'en-tête est absent ou vide.
    """
    buyer_id = (x_buyer_id or "").strip()
    if not buyer_id:
        raise HTTPException(status_code=401, detail="Non authentifié")
    return buyer_id
