"""Order aggregate operations: placement, lookup, the status machine, cancellation.

Every mutation follows load → validate → write. Orders carry a version column,
so a write based on a stale read fails at commit; ``commit_order_change``
turns that into either a no-op (someone already did the same thing) or a
``ConflictError``.
"""

import uuid
from decimal import Decimal
from typing import Callable, Optional, Sequence

from libs.common.currency import ZERO, to_money, to_quantity
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import ConflictError, ValidationError, not_found
from services.orders_service.models import (
    EDITABLE_STATUSES,
    CommissionTrigger,
    DeliveryType,
    LedgerEntryType,
    ModificationType,
    Order,
    OrderItem,
    OrderModification,
    OrderStatus,
    PaymentMethod,
)
from services.orders_service.schemas import DeliveryAddress, OrderItemCreate
from services.orders_service.services import ledger
from services.orders_service.services.commission import (
    CommissionRecorder,
    record_commission_safely,
)
from services.orders_service.services.prepared_items import (
    PreparedItemTracker,
    prepared_items,
)
from services.orders_service.services.pricing import (
    calculate_delivery_fee,
    price_item,
    rebalance_payment,
    recompute_totals,
    validate_split,
)
from services.orders_service.services.shop_settings import get_delivery_settings
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)

# Staff-driven forward path; each step may only move one place to the right
STAFF_TRANSITIONS = {
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.COMPLETED,
}

STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.ACKNOWLEDGED: "acknowledged_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.RETURNED: "returned_at",
    OrderStatus.PARTIALLY_RETURNED: "returned_at",
}

ALL_ITEMS_UNAVAILABLE = "all_items_unavailable"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


async def get_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    """Fresh read of an order; always overwrites whatever the session holds."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise not_found("Order")
    return order


async def get_shop_order(
    db: AsyncSession, *, order_id: uuid.UUID, shop_id: str
) -> Order:
    order = await get_order(db, order_id)
    if order.shop_id != shop_id:
        raise not_found("Order")
    return order


async def get_customer_order(
    db: AsyncSession, *, order_id: uuid.UUID, customer_id: str
) -> Order:
    order = await get_order(db, order_id)
    if order.customer_id != customer_id:
        raise not_found("Order")
    return order


async def list_shop_orders(
    db: AsyncSession,
    *,
    shop_id: str,
    status: Optional[OrderStatus] = None,
    skip: int = 0,
    limit: int = 50,
) -> list[Order]:
    query = select(Order).where(Order.shop_id == shop_id)
    if status:
        query = query.where(Order.status == status)
    query = query.order_by(Order.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_customer_orders(
    db: AsyncSession,
    *,
    customer_id: str,
    shop_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> list[Order]:
    query = select(Order).where(Order.customer_id == customer_id)
    if shop_id:
        query = query.where(Order.shop_id == shop_id)
    query = query.order_by(Order.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# History / transitions (in-memory; callers commit)
# ---------------------------------------------------------------------------


def append_history(
    order: Order,
    *,
    entry_type: ModificationType,
    actor_id: str,
    amount_delta: Decimal = ZERO,
    from_status: Optional[OrderStatus] = None,
    to_status: Optional[OrderStatus] = None,
    details: Optional[dict] = None,
) -> OrderModification:
    entry = OrderModification(
        sequence=len(order.history) + 1,
        entry_type=entry_type,
        actor_id=actor_id,
        amount_delta=to_money(amount_delta),
        from_status=from_status.value if from_status else None,
        to_status=to_status.value if to_status else None,
        details=details,
    )
    order.history.append(entry)
    return entry


def set_status(order: Order, new_status: OrderStatus) -> OrderStatus:
    """Move to ``new_status`` and stamp its timestamp; returns the previous status."""
    previous = order.status
    order.status = new_status
    stamp = STATUS_TIMESTAMPS.get(new_status)
    if stamp and getattr(order, stamp) is None:
        setattr(order, stamp, utc_now())
    return previous


def require_editable(order: Order, action: str) -> None:
    if order.status not in EDITABLE_STATUSES:
        raise ValidationError(
            f"Cannot {action} once an order is {order.status.value}"
        )


async def commit_order_change(
    db: AsyncSession,
    order_id: uuid.UUID,
    *,
    already_applied: Optional[Callable[[Order], bool]] = None,
) -> bool:
    """Commit the pending order change.

    Returns ``False`` when a concurrent writer won and the winner's state
    already satisfies ``already_applied``; raises ``ConflictError`` otherwise.
    """
    try:
        await db.commit()
        return True
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        current = await get_order(db, order_id)
        if already_applied is not None and already_applied(current):
            logger.info(
                "Order %s already in the requested state; concurrent write ignored",
                order_id,
            )
            return False
        logger.warning("Concurrent modification of order %s: %s", order_id, exc)
        raise ConflictError()


# ---------------------------------------------------------------------------
# Credit follow-through for orders whose credit is already on the ledger
# ---------------------------------------------------------------------------


async def sync_approved_credit(
    db: AsyncSession,
    *,
    order: Order,
    previous_credit: Decimal,
    actor_id: str,
    reference: str,
) -> Decimal:
    """Apply a change in an approved order's credit portion to the ledger.

    Increases are checked against the credit limit; decreases floor the
    balance at zero. Returns the delta applied to the order's credit portion.
    """
    if not order.credit_approved:
        return ZERO
    delta = to_money(order.credit_amount) - to_money(previous_credit)
    if delta == ZERO:
        return ZERO

    account = await ledger.require_account(
        db, customer_id=order.customer_id, shop_id=order.shop_id, for_update=True
    )
    key = f"credit-adjustment-{order.id}-{reference}"
    description = f"Adjustment for order {order.order_number}"
    if delta > ZERO:
        await ledger.charge_account(
            db,
            account=account,
            amount=delta,
            entry_type=LedgerEntryType.CREDIT_ADJUSTMENT,
            idempotency_key=key,
            description=description,
            order_id=order.id,
            recorded_by=actor_id,
        )
    else:
        await ledger.reduce_balance(
            db,
            account=account,
            amount=-delta,
            entry_type=LedgerEntryType.CREDIT_ADJUSTMENT,
            idempotency_key=key,
            description=description,
            order_id=order.id,
            recorded_by=actor_id,
        )
    return delta


async def release_approved_credit(
    db: AsyncSession, *, order: Order, amount: Decimal, actor_id: str
) -> Decimal:
    """Give back the credit portion of a cancelled, already-approved order."""
    amount = to_money(amount)
    if not order.credit_approved or amount <= ZERO:
        return ZERO
    account = await ledger.require_account(
        db, customer_id=order.customer_id, shop_id=order.shop_id, for_update=True
    )
    txn = await ledger.reduce_balance(
        db,
        account=account,
        amount=amount,
        entry_type=LedgerEntryType.CANCELLATION_REFUND,
        idempotency_key=f"cancellation-refund-{order.id}",
        description=f"Order {order.order_number} cancelled",
        order_id=order.id,
        recorded_by=actor_id,
    )
    return -txn.amount if txn else ZERO


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------


def _build_item(line: OrderItemCreate) -> OrderItem:
    return price_item(
        OrderItem(
            product_id=line.product_id,
            name=line.name,
            unit=line.unit,
            unit_price=to_money(line.unit_price),
            quantity=to_quantity(line.quantity),
            perishable=line.perishable,
        )
    )


async def place_order(
    db: AsyncSession,
    *,
    shop_id: str,
    customer_id: str,
    items: Sequence[OrderItemCreate],
    payment_method: PaymentMethod,
    delivery_type: DeliveryType = DeliveryType.PICKUP,
    delivery_address: Optional[DeliveryAddress] = None,
    credit_amount: Optional[Decimal] = None,
    cash_amount: Optional[Decimal] = None,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
    order_notes: Optional[str] = None,
) -> Order:
    """Create an order.

    Cash orders start ``confirmed``; anything involving credit waits in
    ``pending_approval`` until the shop approves the credit.
    """
    if not items:
        raise ValidationError("Order must contain at least one item")
    for line in items:
        if to_quantity(line.quantity) <= 0:
            raise ValidationError(f"Quantity for {line.name} must be greater than zero")
        if to_money(line.unit_price) < ZERO:
            raise ValidationError(f"Price for {line.name} cannot be negative")

    address = None
    if delivery_type == DeliveryType.DELIVERY:
        if delivery_address is None:
            raise ValidationError("Delivery address is required for delivery orders")
        missing = [
            name
            for name in ("street", "city", "phone")
            if not getattr(delivery_address, name, "").strip()
        ]
        if missing:
            raise ValidationError(
                f"Delivery address is missing: {', '.join(missing)}"
            )
        address = delivery_address.model_dump(exclude_none=True)

    order = Order(
        order_number=Order.generate_order_number(),
        shop_id=shop_id,
        customer_id=customer_id,
        customer_email=customer_email,
        customer_name=customer_name,
        payment_method=payment_method,
        delivery_type=delivery_type,
        delivery_address=address,
        order_notes=order_notes,
        delivery_fee=ZERO,
        subtotal=ZERO,
        total_amount=ZERO,
        credit_amount=ZERO,
        cash_amount=ZERO,
        credit_requested=payment_method != PaymentMethod.CASH,
        credit_approved=False,
        history=[],
        delivery_proof=None,
        return_record=None,
    )
    for line in items:
        order.items.append(_build_item(line))
    recompute_totals(order)

    delivery_settings = await get_delivery_settings(db, shop_id)
    order.delivery_fee = calculate_delivery_fee(
        delivery_settings, delivery_type, order.subtotal
    )
    recompute_totals(order)

    if payment_method == PaymentMethod.SPLIT:
        credit, _cash = validate_split(order.total_amount, credit_amount, cash_amount)
        rebalance_payment(order, credit_portion=credit)
    else:
        rebalance_payment(order)

    initial = (
        OrderStatus.CONFIRMED
        if payment_method == PaymentMethod.CASH
        else OrderStatus.PENDING_APPROVAL
    )
    set_status(order, initial)
    append_history(
        order,
        entry_type=ModificationType.STATUS_CHANGE,
        actor_id=customer_id,
        amount_delta=order.total_amount,
        to_status=initial,
        details={"event": "placed", "payment_method": payment_method.value},
    )

    db.add(order)
    await db.commit()

    logger.info(
        "Placed order %s (%s) for customer %s at shop %s: total=%s method=%s status=%s",
        order.order_number,
        order.id,
        customer_id,
        shop_id,
        order.total_amount,
        payment_method.value,
        initial.value,
    )
    return await get_order(db, order.id)


# ---------------------------------------------------------------------------
# Staff status machine
# ---------------------------------------------------------------------------


async def advance_status(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    target: OrderStatus,
    actor_id: str,
    tracker: Optional[PreparedItemTracker] = None,
    recorder: Optional[CommissionRecorder] = None,
) -> tuple[Order, list[str]]:
    """Move an order one step along confirmed → preparing → ready → completed.

    Re-requesting the current status is a no-op. ``ready`` requires every
    current item to be marked prepared. Completion records the commission for
    orders that do not have one yet.
    """
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)

    if order.status == target:
        return order, []
    if STAFF_TRANSITIONS.get(order.status) != target:
        if order.status == OrderStatus.PENDING_APPROVAL:
            raise ValidationError("Credit must be approved before fulfilment starts")
        raise ValidationError(
            f"Cannot move order from {order.status.value} to {target.value}"
        )
    if target == OrderStatus.READY and not tracker.all_prepared(
        order.id, [item.id for item in order.items]
    ):
        raise ValidationError("All items must be marked prepared before ready")

    previous = set_status(order, target)
    append_history(
        order,
        entry_type=ModificationType.STATUS_CHANGE,
        actor_id=actor_id,
        from_status=previous,
        to_status=target,
    )
    applied = await commit_order_change(
        db, order.id, already_applied=lambda current: current.status == target
    )
    if not applied:
        return await get_order(db, order_id), []

    if target == OrderStatus.READY:
        tracker.clear(order.id)

    logger.info(
        "Order %s moved %s → %s by %s",
        order.order_number,
        previous.value,
        target.value,
        actor_id,
    )

    warnings: list[str] = []
    if target == OrderStatus.COMPLETED:
        warnings = await record_commission_safely(
            db,
            order=order,
            trigger=CommissionTrigger.ORDER_COMPLETED,
            recorder=recorder,
        )
        if warnings:
            order = await get_order(db, order_id)
    return order, warnings


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def finalize_cancellation(
    db: AsyncSession,
    *,
    order: Order,
    actor_id: str,
    reason: str,
    release_amount: Decimal,
    amount_delta: Decimal = ZERO,
    details: Optional[dict] = None,
) -> Decimal:
    """Mark the order cancelled and release any approved credit; no commit."""
    released = await release_approved_credit(
        db, order=order, amount=release_amount, actor_id=actor_id
    )
    previous = set_status(order, OrderStatus.CANCELLED)
    order.cancellation_reason = reason
    append_history(
        order,
        entry_type=ModificationType.CANCELLATION,
        actor_id=actor_id,
        amount_delta=amount_delta,
        from_status=previous,
        to_status=OrderStatus.CANCELLED,
        details={
            "reason": reason,
            "credit_released": str(released),
            **(details or {}),
        },
    )
    return released


async def cancel_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    actor_id: str,
    reason: str,
    tracker: Optional[PreparedItemTracker] = None,
) -> Order:
    """Staff cancellation of a whole order before it is ready.

    Items and totals are kept as placed for the record; approved credit is
    released back to the customer's account.
    """
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    if order.status == OrderStatus.CANCELLED:
        return order
    require_editable(order, "cancel")

    try:
        released = await finalize_cancellation(
            db,
            order=order,
            actor_id=actor_id,
            reason=reason,
            release_amount=order.credit_amount,
        )
    except Exception:
        await db.rollback()
        raise
    applied = await commit_order_change(
        db,
        order.id,
        already_applied=lambda current: current.status == OrderStatus.CANCELLED,
    )
    tracker.clear(order.id)
    if not applied:
        return await get_order(db, order_id)

    logger.info(
        "Order %s cancelled by %s (reason=%s, credit released=%s)",
        order.order_number,
        actor_id,
        reason,
        released,
    )
    return order
