"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from bakery_api.api.admin import router as admin_router
from bakery_api.api.checkout import router as checkout_router
from bakery_api.api.discounts import router as discounts_router
from bakery_api.api.health import router as health_router
from bakery_api.api.loyalty import router as loyalty_router
from bakery_api.api.orders import router as orders_router
from bakery_api.api.settings import router as settings_router
from bakery_api.api.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "checkout_router",
    "discounts_router",
    "health_router",
    "loyalty_router",
    "orders_router",
    "settings_router",
    "webhooks_router",
]
