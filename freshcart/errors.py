"""
Taxonomie des erreurs du pipeline panier -> commande.

- ValidationError: entrée refusée avant tout appel distant (quantité, code promo, adresse).
- RemoteStoreError: échec d'une écriture/lecture distante (Supabase).
  - RemoteSyncError: côté panier, récupéré localement par re-fetch.
  - OrderWriteError: côté commande, rejoué par le coordinateur.
- PaymentError: capture refusée ou expirée; aucun débit, l'utilisateur peut réessayer.
- PartialCommitError: paiement capturé mais commande incomplète; à rejouer, jamais à abandonner.
- ConcurrencyConflict: deux mutations entrelacées de façon non sûre (évité par la file série).
"""
from typing import Optional


class FreshcartError(Exception):
    """Base de toutes les erreurs métier du service."""


class ValidationError(FreshcartError):
    pass


class RemoteStoreError(FreshcartError):
    pass


class RemoteSyncError(RemoteStoreError):
    pass


class OrderWriteError(RemoteStoreError):
    pass


class PaymentError(FreshcartError):
    def __init__(self, reason: str, payment_reference: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.payment_reference = payment_reference


class PartialCommitError(FreshcartError):
    def __init__(self, stage: str, reason: str, payment_reference: Optional[str] = None):
        super().__init__(f"{stage}: {reason}")
        self.stage = stage
        self.reason = reason
        self.payment_reference = payment_reference


class ConcurrencyConflict(FreshcartError):
    pass
