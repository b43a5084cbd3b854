from contextlib import contextmanager
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.base import Base
from libs.db.session import get_async_db
from services.orders_service import models as _order_models  # noqa: F401
from services.orders_service.services.prepared_items import PreparedItemTracker
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

SHOP_ID = "shop-anand-kirana"
OTHER_SHOP_ID = "shop-sharma-general"
CUSTOMER_ID = "cust-priya"
STAFF_ID = "staff-ravi"


# ---------------------------------------------------------------------------
# Users / auth
# ---------------------------------------------------------------------------


def make_customer_user(user_id: str = CUSTOMER_ID, **kwargs) -> AuthUser:
    return AuthUser(
        user_id=user_id,
        email=kwargs.pop("email", f"{user_id}@example.com"),
        role="authenticated",
        **kwargs,
    )


def make_staff_user(
    shop_id: str = SHOP_ID, user_id: str = STAFF_ID, role: str = "shop_owner"
) -> AuthUser:
    return AuthUser(
        user_id=user_id, email=f"{user_id}@example.com", role=role, shop_id=shop_id
    )


@contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily act as ``user`` for requests made through ``app``."""
    previous = app.dependency_overrides.get(get_current_user)
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield user
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the application's session factory."""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def other_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """A second session on the same database, standing in for another request."""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def tracker() -> PreparedItemTracker:
    return PreparedItemTracker()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def orders_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Client for the orders service, acting as the shop owner by default."""
    from services.orders_service.app.main import app

    async def _db():
        yield db_session

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_current_user] = lambda: make_staff_user()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def item_payload(
    product_id: str,
    name: str,
    unit_price: str,
    quantity: str = "1",
    perishable: bool = False,
) -> dict:
    return {
        "product_id": product_id,
        "name": name,
        "unit_price": unit_price,
        "quantity": quantity,
        "perishable": perishable,
    }


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def history_types(order, since: Optional[int] = None) -> list[str]:
    entries = order.history if since is None else order.history[since:]
    return [entry.entry_type.value for entry in entries]
