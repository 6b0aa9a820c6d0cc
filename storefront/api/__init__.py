# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import checkouts, currencies, discounts, health, orders, payments


def include_routers(app: FastAPI) -> FastAPI:
    app.include_router(health.router)
    app.include_router(checkouts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(currencies.router)
    app.include_router(discounts.router)
    return app
