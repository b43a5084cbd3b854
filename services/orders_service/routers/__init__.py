"""Orders service routers package."""

from services.orders_service.routers.credit import router as credit_router
from services.orders_service.routers.orders import router as orders_router
from services.orders_service.routers.shop_credit import router as shop_credit_router
from services.orders_service.routers.shop_orders import router as shop_orders_router
from services.orders_service.routers.shop_settings import (
    router as shop_settings_router,
)

__all__ = [
    "credit_router",
    "orders_router",
    "shop_credit_router",
    "shop_orders_router",
    "shop_settings_router",
]
