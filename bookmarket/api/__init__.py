"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from bookmarket.api.health import router as health_router
from bookmarket.api.listings import router as listings_router
from bookmarket.api.maintenance import router as maintenance_router
from bookmarket.api.orders import router as orders_router

__all__ = [
    "health_router",
    "listings_router",
    "maintenance_router",
    "orders_router",
]
