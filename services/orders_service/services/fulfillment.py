"""Fulfilment edits while an order is still being put together.

Substitution and item cancellation are only legal before the order is
``ready``. Both recompute totals, rebalance the payment split, append an audit
entry and, for orders whose credit is already on the ledger, push the change
in the credit portion through as a ``credit_adjustment``.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, to_money, to_quantity
from libs.common.logging import get_logger
from services.orders_service.errors import ConflictError, ValidationError, not_found
from services.orders_service.models import (
    ModificationType,
    Order,
    OrderItem,
    OrderStatus,
)
from services.orders_service.services.order_ops import (
    ALL_ITEMS_UNAVAILABLE,
    append_history,
    commit_order_change,
    finalize_cancellation,
    get_shop_order,
    require_editable,
    sync_approved_credit,
)
from services.orders_service.services.prepared_items import (
    PreparedItemTracker,
    prepared_items,
)
from services.orders_service.services.pricing import (
    price_item,
    rebalance_payment,
    recompute_totals,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)


def _find_item(order: Order, item_id: uuid.UUID) -> OrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise not_found("Order item")


def _current_ids(order: Order) -> list[uuid.UUID]:
    return [item.id for item in order.items]


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------


async def substitute_item(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    item_id: uuid.UUID,
    product_id: str,
    name: str,
    unit_price: Decimal,
    quantity: Decimal,
    actor_id: str,
    unit: Optional[str] = None,
    perishable: bool = False,
    reason: Optional[str] = None,
    tracker: Optional[PreparedItemTracker] = None,
) -> Order:
    """Replace one line with another product.

    If the replacement product is already on the order as an ordinary line,
    the quantity is merged into that line and the original line dropped
    (``quantity_merge``). Otherwise the replacement takes the original's slot,
    flagged ``substituted`` with a snapshot of what it replaced.
    """
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    require_editable(order, "substitute items")
    original = _find_item(order, item_id)

    quantity = to_quantity(quantity)
    if quantity <= 0:
        raise ValidationError("Substitute quantity must be greater than zero")
    if to_money(unit_price) < ZERO:
        raise ValidationError("Substitute price cannot be negative")
    if product_id == original.product_id:
        raise ValidationError("Substitute must be a different product")

    previous_credit = to_money(order.credit_amount)
    snapshot = original.snapshot()
    existing = next(
        (
            item
            for item in order.items
            if item is not original
            and item.product_id == product_id
            and not item.substituted
        ),
        None,
    )

    if existing is not None:
        existing.quantity = to_quantity(existing.quantity + quantity)
        price_item(existing)
        order.items.remove(original)
        order.items.reorder()
        entry_type = ModificationType.QUANTITY_MERGE
        details = {
            "original_item": snapshot,
            "merged_into": str(existing.id),
            "added_quantity": str(quantity),
            "new_quantity": str(existing.quantity),
        }
    else:
        replacement = price_item(
            OrderItem(
                product_id=product_id,
                name=name,
                unit=unit,
                unit_price=to_money(unit_price),
                quantity=quantity,
                perishable=perishable,
                substituted=True,
                original_item=snapshot,
            )
        )
        order.items[order.items.index(original)] = replacement
        entry_type = ModificationType.SUBSTITUTION
        details = {
            "original_item": snapshot,
            "replacement": {
                "product_id": product_id,
                "name": name,
                "unit_price": str(to_money(unit_price)),
                "quantity": str(quantity),
            },
        }
    if reason:
        details["reason"] = reason

    delta = recompute_totals(order)
    rebalance_payment(order)
    entry = append_history(
        order,
        entry_type=entry_type,
        actor_id=actor_id,
        amount_delta=delta,
        details=details,
    )

    try:
        await sync_approved_credit(
            db,
            order=order,
            previous_credit=previous_credit,
            actor_id=actor_id,
            reference=str(entry.sequence),
        )
    except (StaleDataError, IntegrityError):
        await db.rollback()
        raise ConflictError()
    except Exception:
        await db.rollback()
        raise
    await commit_order_change(db, order.id)
    tracker.reconcile(order.id, _current_ids(order))

    logger.info(
        "Order %s: %s %s → %s (total change %s) by %s",
        order.order_number,
        entry_type.value,
        snapshot["name"],
        name,
        delta,
        actor_id,
    )
    return order


# ---------------------------------------------------------------------------
# Item cancellation
# ---------------------------------------------------------------------------


async def cancel_item(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    item_id: uuid.UUID,
    actor_id: str,
    reason: Optional[str] = None,
    tracker: Optional[PreparedItemTracker] = None,
) -> Order:
    """Remove one line. Removing the last line cancels the whole order."""
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    require_editable(order, "cancel items")
    item = _find_item(order, item_id)

    snapshot = item.snapshot()
    refunded = to_money(item.total)
    previous_credit = to_money(order.credit_amount)

    order.items.remove(item)
    order.items.reorder()

    try:
        if not order.items:
            # Nothing left to deliver: the fee goes too
            order.delivery_fee = ZERO
            delta = recompute_totals(order)
            rebalance_payment(order)
            await finalize_cancellation(
                db,
                order=order,
                actor_id=actor_id,
                reason=ALL_ITEMS_UNAVAILABLE,
                release_amount=previous_credit,
                amount_delta=delta,
                details={"cancelled_item": snapshot, "note": reason},
            )
        else:
            delta = recompute_totals(order)
            rebalance_payment(order)
            entry = append_history(
                order,
                entry_type=ModificationType.ITEM_CANCELLATION,
                actor_id=actor_id,
                amount_delta=-refunded,
                details={
                    "cancelled_item": snapshot,
                    "refunded_amount": str(refunded),
                    "reason": reason,
                },
            )
            await sync_approved_credit(
                db,
                order=order,
                previous_credit=previous_credit,
                actor_id=actor_id,
                reference=str(entry.sequence),
            )
    except (StaleDataError, IntegrityError):
        await db.rollback()
        raise ConflictError()
    except Exception:
        await db.rollback()
        raise
    await commit_order_change(db, order.id)

    if order.status == OrderStatus.CANCELLED:
        tracker.clear(order.id)
        logger.info(
            "Order %s cancelled: last item %s unavailable (by %s)",
            order.order_number,
            snapshot["name"],
            actor_id,
        )
    else:
        tracker.reconcile(order.id, _current_ids(order))
        logger.info(
            "Order %s: cancelled item %s (refunded %s) by %s",
            order.order_number,
            snapshot["name"],
            refunded,
            actor_id,
        )
    return order


# ---------------------------------------------------------------------------
# Prepared-item tracking
# ---------------------------------------------------------------------------


async def set_item_prepared(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    item_id: uuid.UUID,
    prepared: bool,
    tracker: Optional[PreparedItemTracker] = None,
) -> tuple[Order, set[uuid.UUID]]:
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    if order.status != OrderStatus.PREPARING:
        raise ValidationError("Items can only be marked while the order is preparing")
    _find_item(order, item_id)

    tracker.reconcile(order.id, _current_ids(order))
    if prepared:
        marked = tracker.mark(order.id, item_id)
    else:
        marked = tracker.unmark(order.id, item_id)
    return order, marked


async def get_prepared_items(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    tracker: Optional[PreparedItemTracker] = None,
) -> tuple[Order, set[uuid.UUID]]:
    """Current prepared set, reconciled against the order as it is now."""
    tracker = tracker or prepared_items
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    return order, tracker.reconcile(order.id, _current_ids(order))
