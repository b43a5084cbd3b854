"""Platform commission collaborator.

Order operations call ``record_commission_safely`` after their primary change
has committed. Whatever the recorder does, a failure only produces a warning;
the order keeps its new status.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Protocol

from libs.common.config import get_settings
from libs.common.currency import to_money
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import DependencyFailure
from services.orders_service.models import (
    CommissionRecord,
    CommissionStatus,
    CommissionTrigger,
    Order,
    ShopSettings,
)
from services.orders_service.services.shop_settings import get_shop_settings
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class CommissionResult:
    commission_id: Optional[uuid.UUID]
    amount: Decimal
    rate: Decimal
    skipped: bool = False


class CommissionRecorder(Protocol):
    async def record(
        self,
        db: AsyncSession,
        *,
        order: Order,
        shop: Optional[ShopSettings],
        trigger: CommissionTrigger,
    ) -> CommissionResult: ...


class DatabaseCommissionRecorder:
    """Persists one ``CommissionRecord`` per order; repeat calls are no-ops."""

    async def record(
        self,
        db: AsyncSession,
        *,
        order: Order,
        shop: Optional[ShopSettings],
        trigger: CommissionTrigger,
    ) -> CommissionResult:
        settings = get_settings()

        existing = (
            await db.execute(
                select(CommissionRecord).where(CommissionRecord.order_id == order.id)
            )
        ).scalar_one_or_none()
        if existing:
            return CommissionResult(
                commission_id=existing.id,
                amount=existing.commission_amount,
                rate=existing.commission_rate,
                skipped=True,
            )

        rate = settings.DEFAULT_COMMISSION_RATE
        if shop is not None and shop.commission_rate is not None:
            rate = shop.commission_rate
        rate = Decimal(rate)
        if rate < 0 or rate > 1:
            raise DependencyFailure("commission", f"invalid commission rate {rate}")

        sale_amount = to_money(order.total_amount)
        amount = to_money(sale_amount * rate)

        record = CommissionRecord(
            order_id=order.id,
            shop_id=order.shop_id,
            shop_name=shop.shop_name if shop else None,
            customer_id=order.customer_id,
            sale_amount=sale_amount,
            payment_method=order.payment_method,
            commission_rate=rate,
            commission_amount=amount,
            trigger=trigger,
            status=CommissionStatus.PENDING,
            due_date=utc_now() + timedelta(days=settings.COMMISSION_DUE_DAYS),
        )
        db.add(record)
        try:
            await db.flush()
        except SQLAlchemyError as exc:
            raise DependencyFailure("commission", str(exc)) from exc

        return CommissionResult(commission_id=record.id, amount=amount, rate=rate)


default_commission_recorder = DatabaseCommissionRecorder()


async def record_commission_safely(
    db: AsyncSession,
    *,
    order: Order,
    trigger: CommissionTrigger,
    recorder: Optional[CommissionRecorder] = None,
) -> list[str]:
    """Run the recorder in its own commit; returns warnings instead of raising."""
    if order.commission_recorded:
        return []

    recorder = recorder or default_commission_recorder
    order_id = order.id
    try:
        shop = await get_shop_settings(db, order.shop_id)
        result = await recorder.record(db, order=order, shop=shop, trigger=trigger)
        order.commission_recorded = True
        order.commission_id = result.commission_id
        order.commission_amount = result.amount
        await db.commit()
    except Exception as exc:
        await db.rollback()
        failure = (
            exc
            if isinstance(exc, DependencyFailure)
            else DependencyFailure("commission", str(exc))
        )
        logger.warning(
            "Commission not recorded for order %s (%s): %s",
            order_id,
            trigger.value,
            failure.message,
        )
        return [f"Commission could not be recorded: {failure.message}"]

    if result.skipped:
        logger.info("Commission already recorded for order %s", order_id)
    else:
        logger.info(
            "Recorded commission %s for order %s: %s at rate %s",
            result.commission_id,
            order_id,
            result.amount,
            result.rate,
        )
    return []
