"""FastAPI application for the Shop Credit Orders Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.orders_service.routers import (
    credit_router,
    orders_router,
    shop_credit_router,
    shop_orders_router,
    shop_settings_router,
)


def create_app() -> FastAPI:
    """Create and configure the orders service FastAPI app."""
    app = FastAPI(
        title="Shop Credit Orders Service",
        version="0.1.0",
        description=(
            "Orders, per-shop customer credit accounts, payment confirmation, "
            "returns and platform commission for neighbourhood shops."
        ),
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "orders"}

    # Customer routes
    app.include_router(orders_router)
    app.include_router(credit_router)

    # Shop staff routes
    app.include_router(shop_orders_router)
    app.include_router(shop_credit_router)
    app.include_router(shop_settings_router)

    return app


app = create_app()
