"""Customer acknowledgement of a completed order."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.orders_service.errors import ValidationError
from services.orders_service.models import (
    DeliveryProof,
    ModificationType,
    Order,
    OrderStatus,
)
from services.orders_service.services.order_ops import (
    append_history,
    commit_order_change,
    get_customer_order,
    set_status,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


async def acknowledge_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    customer_id: str,
    rating: int,
    notes: Optional[str] = None,
) -> Order:
    """Write the delivery proof and move the order to ``acknowledged``.

    Written once; a repeat acknowledgement is rejected and never overwrites
    the first one.
    """
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}"
        )

    order = await get_customer_order(db, order_id=order_id, customer_id=customer_id)
    if order.delivery_proof is not None or order.status == OrderStatus.ACKNOWLEDGED:
        raise ValidationError("Order has already been acknowledged")
    if order.status != OrderStatus.COMPLETED:
        raise ValidationError(
            f"Only completed orders can be acknowledged (order is {order.status.value})"
        )

    order.delivery_proof = DeliveryProof(
        acknowledged=True,
        acknowledged_by=customer_id,
        rating=rating,
        customer_notes=notes,
    )
    previous = set_status(order, OrderStatus.ACKNOWLEDGED)
    order.delivery_proof.acknowledged_at = order.acknowledged_at
    append_history(
        order,
        entry_type=ModificationType.CUSTOMER_ACKNOWLEDGMENT,
        actor_id=customer_id,
        from_status=previous,
        to_status=OrderStatus.ACKNOWLEDGED,
        details={"rating": rating},
    )
    applied = await commit_order_change(
        db, order.id, already_applied=lambda current: current.delivery_proof is not None
    )
    if not applied:
        raise ValidationError("Order has already been acknowledged")

    logger.info(
        "Order %s acknowledged by customer %s (rating %d)",
        order.order_number,
        customer_id,
        rating,
    )
    return order
