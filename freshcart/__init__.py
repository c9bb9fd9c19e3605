"""Service de checkout FreshCart: panier, paiement, commandes."""

__version__ = "0.1.0"
