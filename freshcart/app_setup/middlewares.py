from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freshcart.config import CORS_ORIGINS

def register_basic_middlewares(app: FastAPI) -> None:
    """CORS pour le front (origines via CORS_ORIGINS, '*' par défaut en dev)."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
