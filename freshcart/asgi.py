"""
ASGI entrypoint: expose `app` pour uvicorn / process managers (freshcart.asgi:app).
"""
import logging

from freshcart.app_setup.factory import create_app
from freshcart.config import LOG_LEVEL

logging.basicConfig(level=LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = create_app()
