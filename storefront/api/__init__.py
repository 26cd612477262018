# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.errors import install_error_handlers
from storefront.api.routers import addresses, cart, checkout, health, orders, webhooks


def include_routers(app: FastAPI) -> FastAPI:
    install_error_handlers(app)
    app.include_router(health.router)
    app.include_router(cart.router)
    app.include_router(checkout.router)
    app.include_router(webhooks.router)
    app.include_router(addresses.router)
    app.include_router(orders.router)
    return app
