"""
Registre central des routers.
- API v1: cart, checkout, orders, payments (webhook)
- Health: health_router
"""
from fastapi import FastAPI

from freshcart.cart import views as cart_views
from freshcart.checkout import views as checkout_views
from freshcart.health.router import router as health_router
from freshcart.orders import views as orders_views
from freshcart.payments import views as payments_views

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(cart_views.router)
    app.include_router(checkout_views.router)
    app.include_router(orders_views.router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)
