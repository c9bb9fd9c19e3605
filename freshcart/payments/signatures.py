"""Signatures HMAC-SHA256 (hex) des notifications serveur-à-serveur."""
import hashlib
import hmac
from typing import Union

def compute_signature(payload: Union[bytes, str], secret: str) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

def verify_signature(payload: Union[bytes, str], signature: str, secret: str) -> bool:
    """
    Compare en temps constant la signature reçue à celle attendue.
    - Secret ou signature absents: toujours False.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
