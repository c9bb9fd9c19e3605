"""
Factory d'application utilisée par les entrypoints (freshcart.asgi) et les tests.
"""
from fastapi import FastAPI

from freshcart import __version__
from .exceptions import register_exception_handlers
from .lifespan import lifespan
from .middlewares import register_basic_middlewares
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares (CORS)
      - gestionnaires d'exceptions métier
      - tous les routers (API v1, health)
    """
    app = FastAPI(title="FreshCart Checkout", version=__version__, lifespan=lifespan)
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
