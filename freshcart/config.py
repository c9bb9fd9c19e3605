# freshcart.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale du service checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, passerelle de paiement)
- Expose les règles de tarification (frais de port, seuil de gratuité, devise)
- Expose les bornes temporelles du checkout (attente paiement, retries)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _decimal_env(name: str, default: str) -> Decimal:
    return Decimal(_clean_env(os.getenv(name) or default))

def _float_env(name: str, default: str) -> float:
    return float(_clean_env(os.getenv(name) or default))

# Supabase: URL et clés (anon/service)
# - SUPABASE_URL peut parfois être sans schéma: on préfixe en https:// si nécessaire
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Passerelle de paiement: "fake" (dev/tests) ou "stripe" (production)
PAYMENT_GATEWAY = _clean_env(os.getenv("PAYMENT_GATEWAY") or "fake").lower()
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
# Moyen de paiement Stripe (pm_...) utilisé quand la capture n'en précise pas
STRIPE_PAYMENT_METHOD = _clean_env(os.getenv("STRIPE_PAYMENT_METHOD") or "")
# Secret partagé pour authentifier les webhooks serveur-à-serveur
PAYMENT_WEBHOOK_SECRET = _clean_env(
    os.getenv("PAYMENT_WEBHOOK_SECRET") or os.getenv("STRIPE_WEBHOOK_SECRET") or ""
)

# Tarification
CURRENCY = _clean_env(os.getenv("CURRENCY") or "INR").upper()
SHIPPING_FEE = _decimal_env("SHIPPING_FEE", "5.99")
FREE_SHIPPING_THRESHOLD = _decimal_env("FREE_SHIPPING_THRESHOLD", "50")

# Checkout: attente de la confirmation autoritative du paiement (secondes)
PAYMENT_TIMEOUT_SECONDS = _float_env("PAYMENT_TIMEOUT_SECONDS", "120")
PAYMENT_POLL_INTERVAL_SECONDS = _float_env("PAYMENT_POLL_INTERVAL_SECONDS", "2")
# Checkout: retries automatiques des écritures post-paiement
CHECKOUT_MAX_RETRIES = int(_clean_env(os.getenv("CHECKOUT_MAX_RETRIES") or "5"))
CHECKOUT_RETRY_WAIT_SECONDS = _float_env("CHECKOUT_RETRY_WAIT_SECONDS", "0.5")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "info").lower()
