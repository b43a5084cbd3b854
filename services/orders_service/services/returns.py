"""Return/refund engine for completed orders.

Refunds are always the stored ``total`` of the returned lines, i.e. what the
customer was actually charged, never a recomputation from current prices.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from libs.common.currency import ZERO, sum_money, to_money
from libs.common.datetime_utils import hours_between, utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import ConflictError, ValidationError
from services.orders_service.models import (
    RETURNABLE_STATUSES,
    LedgerEntryType,
    ModificationType,
    Order,
    OrderStatus,
    RefundMethod,
    ReturnRecord,
)
from services.orders_service.services import ledger
from services.orders_service.services.order_ops import (
    append_history,
    commit_order_change,
    get_shop_order,
    set_status,
)
from services.orders_service.services.pricing import rebalance_payment, recompute_totals
from services.orders_service.services.shop_settings import (
    ReturnPolicy,
    get_return_policy,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReturnEligibility:
    eligible: bool
    policy: ReturnPolicy
    reason: Optional[str] = None
    hours_elapsed: Optional[float] = None
    hours_remaining: Optional[float] = None


def check_return_eligibility(
    order: Order, policy: ReturnPolicy, now: Optional[datetime] = None
) -> ReturnEligibility:
    """Evaluate the shop's return window against the order's completion time."""
    if order.status not in RETURNABLE_STATUSES:
        return ReturnEligibility(
            eligible=False,
            policy=policy,
            reason=f"Order is {order.status.value}; only delivered orders can be returned",
        )
    if not policy.allow_returns:
        return ReturnEligibility(
            eligible=False, policy=policy, reason="This shop does not accept returns"
        )
    if order.completed_at is None:
        return ReturnEligibility(
            eligible=False, policy=policy, reason="Order has no completion time"
        )

    elapsed = hours_between(order.completed_at, now)
    window = policy.return_window_hours
    if elapsed > window:
        return ReturnEligibility(
            eligible=False,
            policy=policy,
            reason=(
                f"Return window closed: {elapsed:.1f} hours since completion is "
                f"{elapsed - window:.1f} hours over the {window}-hour limit"
            ),
            hours_elapsed=round(elapsed, 2),
            hours_remaining=0.0,
        )
    return ReturnEligibility(
        eligible=True,
        policy=policy,
        hours_elapsed=round(elapsed, 2),
        hours_remaining=round(window - elapsed, 2),
    )


async def get_return_eligibility(
    db: AsyncSession, order: Order, now: Optional[datetime] = None
) -> ReturnEligibility:
    policy = await get_return_policy(db, order.shop_id)
    return check_return_eligibility(order, policy, now)


async def process_return(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    item_ids: Sequence[uuid.UUID],
    reason: str,
    actor_id: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    """Take items back and refund what was charged for them.

    1. Eligibility (window, perishables) and reason against shop policy
    2. Remove the returned lines; recompute totals
    3. Status → returned (nothing left) or partially_returned
    4. Credit-paid portion refunded to the account (balance floored at 0);
       cash refunds are recorded for audit only
    5. ReturnRecord snapshot + ``return_processed`` history entry
    """
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    if order.return_record is not None:
        raise ValidationError("A return has already been processed for this order")

    # 1. Policy
    policy = await get_return_policy(db, order.shop_id)
    eligibility = check_return_eligibility(order, policy, now)
    if not eligibility.eligible:
        raise ValidationError(eligibility.reason)
    if reason not in policy.allowed_reasons:
        raise ValidationError(
            f"Return reason '{reason}' is not accepted; "
            f"allowed: {', '.join(policy.allowed_reasons)}"
        )

    wanted = list(dict.fromkeys(item_ids))
    if not wanted:
        raise ValidationError("Select at least one item to return")
    by_id = {item.id: item for item in order.items}
    missing = [str(item_id) for item_id in wanted if item_id not in by_id]
    if missing:
        raise ValidationError(f"Items not on this order: {', '.join(missing)}")
    returned = [by_id[item_id] for item_id in wanted]

    perishable = [item.name for item in returned if item.perishable]
    if perishable and eligibility.hours_elapsed > policy.perishable_window_hours:
        raise ValidationError(
            f"Perishable items ({', '.join(perishable)}) can only be returned within "
            f"{policy.perishable_window_hours} hours of completion"
        )

    refund = sum_money(item.total for item in returned)
    original_payment = {
        "payment_method": order.payment_method.value,
        "subtotal": str(to_money(order.subtotal)),
        "delivery_fee": str(to_money(order.delivery_fee)),
        "total_amount": str(to_money(order.total_amount)),
        "credit_amount": str(to_money(order.credit_amount)),
        "cash_amount": str(to_money(order.cash_amount)),
    }
    returned_items = [
        {**item.snapshot(), "refund_amount": str(to_money(item.total))}
        for item in returned
    ]

    # 2. Items + totals
    previous_credit = to_money(order.credit_amount)
    for item in returned:
        order.items.remove(item)
    order.items.reorder()
    recompute_totals(order)

    credit_refund = ZERO
    if order.involves_credit and order.credit_approved:
        credit_refund = min(refund, previous_credit)
    rebalance_payment(order, credit_portion=previous_credit - credit_refund)
    cash_refund = refund - credit_refund

    # 3. Status
    new_status = OrderStatus.PARTIALLY_RETURNED if order.items else OrderStatus.RETURNED

    try:
        # 4. Ledger
        applied = ZERO
        if credit_refund > ZERO:
            account = await ledger.require_account(
                db,
                customer_id=order.customer_id,
                shop_id=order.shop_id,
                for_update=True,
            )
            txn = await ledger.reduce_balance(
                db,
                account=account,
                amount=credit_refund,
                entry_type=LedgerEntryType.RETURN_REFUND,
                idempotency_key=f"return-refund-{order.id}",
                description=f"Return refund - order {order.order_number} ({reason})",
                order_id=order.id,
                recorded_by=actor_id,
            )
            applied = -txn.amount if txn else ZERO

        # 5. Audit
        order.return_record = ReturnRecord(
            return_date=now or utc_now(),
            returned_items=returned_items,
            reason=reason,
            notes=notes,
            refund_amount=refund,
            refund_method=(
                RefundMethod.CREDIT_BALANCE if credit_refund > ZERO else RefundMethod.CASH
            ),
            credit_refund_applied=applied,
            original_payment=original_payment,
            processed_by=actor_id,
        )
        previous = set_status(order, new_status)
        append_history(
            order,
            entry_type=ModificationType.RETURN_PROCESSED,
            actor_id=actor_id,
            amount_delta=-refund,
            from_status=previous,
            to_status=new_status,
            details={
                "reason": reason,
                "item_ids": [str(item_id) for item_id in wanted],
                "refund_amount": str(refund),
                "credit_refund": str(credit_refund),
                "credit_refund_applied": str(applied),
                "cash_refund": str(cash_refund),
            },
        )
    except (StaleDataError, IntegrityError):
        await db.rollback()
        raise ConflictError()
    except Exception:
        await db.rollback()
        raise
    await commit_order_change(db, order.id)

    logger.info(
        "Processed return on order %s: %d item(s), refund %s (credit %s applied, cash %s), status %s",
        order.order_number,
        len(returned),
        refund,
        applied,
        cash_refund,
        new_status.value,
    )
    return order
