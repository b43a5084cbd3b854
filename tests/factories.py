"""
Builders for orders and credit accounts in a known state.

Orders are driven through the real service functions so every fixture order
carries the same history and ledger entries production orders would.

Usage:
    account = await open_account(db_session, credit_limit="1000")
    order = await place(db_session, [line("rice", "Rice 5kg", "500")],
                        payment_method=PaymentMethod.CREDIT)
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Sequence

from libs.common.currency import to_money
from libs.common.datetime_utils import utc_now
from services.orders_service.errors import DependencyFailure
from services.orders_service.models import (
    CreditAccount,
    Order,
    OrderStatus,
    PaymentMethod,
    ShopSettings,
)
from services.orders_service.schemas import OrderItemCreate
from services.orders_service.services.commission import CommissionResult
from services.orders_service.services.credit_ops import approve_credit
from services.orders_service.services.order_ops import (
    advance_status,
    get_order,
    place_order,
)
from services.orders_service.services.prepared_items import PreparedItemTracker
from tests.conftest import CUSTOMER_ID, SHOP_ID, STAFF_ID


class NoopCommissionRecorder:
    """Recorder that succeeds without writing anything."""

    async def record(self, db, *, order, shop, trigger):
        return CommissionResult(
            commission_id=None, amount=Decimal("0"), rate=Decimal("0")
        )


class FailingCommissionRecorder:
    """Recorder whose backing store is down."""

    def __init__(self, message: str = "commission ledger unavailable"):
        self.message = message
        self.calls = 0

    async def record(self, db, *, order, shop, trigger):
        self.calls += 1
        raise DependencyFailure("commission", self.message)


# ---------------------------------------------------------------------------
# Lines / settings / accounts
# ---------------------------------------------------------------------------


def line(
    product_id: str,
    name: str,
    unit_price: str,
    quantity: str = "1",
    perishable: bool = False,
) -> OrderItemCreate:
    return OrderItemCreate(
        product_id=product_id,
        name=name,
        unit_price=Decimal(unit_price),
        quantity=Decimal(quantity),
        perishable=perishable,
    )


async def save_settings(db, shop_id: str = SHOP_ID, **values) -> ShopSettings:
    settings = ShopSettings(shop_id=shop_id, **values)
    db.add(settings)
    await db.commit()
    return settings


async def open_account(
    db,
    *,
    customer_id: str = CUSTOMER_ID,
    shop_id: str = SHOP_ID,
    credit_limit: str = "5000",
    balance: str = "0",
) -> CreditAccount:
    """Insert an account directly with a given balance (no ledger history)."""
    account = CreditAccount(
        customer_id=customer_id,
        shop_id=shop_id,
        credit_limit=to_money(credit_limit),
        current_balance=to_money(balance),
    )
    db.add(account)
    await db.commit()
    await db.refresh(account)
    return account


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


async def place(
    db,
    items: Sequence[OrderItemCreate],
    *,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    customer_id: str = CUSTOMER_ID,
    shop_id: str = SHOP_ID,
    **kwargs,
) -> Order:
    return await place_order(
        db,
        shop_id=shop_id,
        customer_id=customer_id,
        items=items,
        payment_method=payment_method,
        **kwargs,
    )


async def approved_order(
    db,
    items: Sequence[OrderItemCreate],
    *,
    payment_method: PaymentMethod = PaymentMethod.CREDIT,
    **kwargs,
) -> Order:
    """Place a credit/split order and approve its credit."""
    order = await place(db, items, payment_method=payment_method, **kwargs)
    order, warnings = await approve_credit(
        db,
        order_id=order.id,
        shop_id=order.shop_id,
        actor_id=STAFF_ID,
        recorder=NoopCommissionRecorder(),
    )
    assert warnings == []
    return order


async def advance_to(
    db,
    order: Order,
    target: OrderStatus,
    *,
    tracker: Optional[PreparedItemTracker] = None,
) -> Order:
    """Walk a confirmed order along the staff pipeline up to ``target``."""
    tracker = tracker or PreparedItemTracker()
    path = [OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.COMPLETED]
    for step in path:
        if step == OrderStatus.READY:
            for item in order.items:
                tracker.mark(order.id, item.id)
        order, _ = await advance_status(
            db,
            order_id=order.id,
            shop_id=order.shop_id,
            target=step,
            actor_id=STAFF_ID,
            tracker=tracker,
            recorder=NoopCommissionRecorder(),
        )
        if step == target:
            break
    return order


async def completed_hours_ago(db, order: Order, hours: float) -> Order:
    """Backdate the completion time of a completed order."""
    order.completed_at = utc_now() - timedelta(hours=hours)
    await db.commit()
    return await get_order(db, order.id)


def unknown_id() -> uuid.UUID:
    return uuid.uuid4()
