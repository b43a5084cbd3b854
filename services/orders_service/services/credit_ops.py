"""Credit approval, limits, quick credit sales and credit reporting."""

import csv
import io
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, sum_money, to_money
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import ValidationError
from services.orders_service.models import (
    CommissionTrigger,
    CreditAccount,
    DeliveryType,
    LedgerEntryType,
    ModificationType,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMethod,
)
from services.orders_service.services import ledger
from services.orders_service.services.commission import (
    CommissionRecorder,
    record_commission_safely,
)
from services.orders_service.services.order_ops import (
    append_history,
    commit_order_change,
    get_order,
    get_shop_order,
    set_status,
)
from services.orders_service.services.pricing import (
    price_item,
    rebalance_payment,
    recompute_totals,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

QUICK_SALE_PRODUCT_ID = "quick-sale"


def _credit_portion(order: Order) -> Decimal:
    if order.payment_method == PaymentMethod.CREDIT:
        return to_money(order.total_amount)
    if order.payment_method == PaymentMethod.SPLIT:
        return to_money(order.credit_amount)
    return ZERO


def _check_headroom(account: CreditAccount, amount: Decimal) -> None:
    balance = to_money(account.current_balance)
    limit = to_money(account.credit_limit)
    if balance + amount > limit:
        raise ValidationError(
            f"Credit limit exceeded: order needs {amount} but only "
            f"{limit - balance} of {limit} is available"
        )


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


async def approve_credit(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    shop_id: str,
    actor_id: str,
    recorder: Optional[CommissionRecorder] = None,
) -> tuple[Order, list[str]]:
    """Charge the order's credit portion to the customer's account and confirm it.

    1. Already approved → no-op (retry-safe)
    2. Validate status and credit portion
    3. Load or open the account, check headroom
    4. Atomic balance increment + ``credit_purchase`` entry
    5. Order → confirmed, ``credit_approved`` set; single commit
    6. Commission recorded separately; a failure only adds a warning
    """
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)

    # 1. Idempotency on the order's own flag
    if order.credit_approved:
        logger.info("Credit already approved for order %s; no-op", order.order_number)
        return order, []

    # 2. Validate
    if order.status != OrderStatus.PENDING_APPROVAL:
        raise ValidationError(
            f"Cannot approve credit for an order that is {order.status.value}"
        )
    if order.payment_method == PaymentMethod.CASH:
        raise ValidationError("Order does not involve credit")
    amount = _credit_portion(order)
    if amount <= ZERO:
        raise ValidationError("Order has no credit portion to approve")

    try:
        # 3. Account + headroom
        account = await ledger.get_or_create_account(
            db,
            customer_id=order.customer_id,
            shop_id=order.shop_id,
            customer_email=order.customer_email,
            customer_name=order.customer_name,
        )
        _check_headroom(account, amount)

        # 4. Ledger
        txn = await ledger.charge_account(
            db,
            account=account,
            amount=amount,
            entry_type=LedgerEntryType.CREDIT_PURCHASE,
            idempotency_key=f"credit-approval-{order.id}",
            description=f"Purchase on credit - order {order.order_number}",
            order_id=order.id,
            recorded_by=actor_id,
        )
    except Exception:
        await db.rollback()
        raise

    # 5. Order
    order.credit_approved = True
    order.credit_approved_at = utc_now()
    previous = set_status(order, OrderStatus.CONFIRMED)
    append_history(
        order,
        entry_type=ModificationType.CREDIT_APPROVED,
        actor_id=actor_id,
        amount_delta=amount,
        from_status=previous,
        to_status=OrderStatus.CONFIRMED,
        details={
            "credit_charged": str(amount),
            "balance_after": str(txn.balance_after),
        },
    )
    applied = await commit_order_change(
        db, order.id, already_applied=lambda current: current.credit_approved
    )
    if not applied:
        return await get_order(db, order_id), []

    logger.info(
        "Approved credit %s for order %s (customer %s, shop %s), balance now %s",
        amount,
        order.order_number,
        order.customer_id,
        order.shop_id,
        txn.balance_after,
    )

    # 6. Secondary effect
    warnings = await record_commission_safely(
        db, order=order, trigger=CommissionTrigger.CREDIT_APPROVAL, recorder=recorder
    )
    return await get_order(db, order.id), warnings


# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------


async def set_credit_limit(
    db: AsyncSession,
    *,
    shop_id: str,
    customer_id: str,
    new_limit: Decimal,
    actor_id: str,
) -> CreditAccount:
    """Change a customer's limit; never below what they already owe."""
    new_limit = to_money(new_limit)
    if new_limit < ZERO:
        raise ValidationError("Credit limit cannot be negative")

    try:
        account = await ledger.get_or_create_account(
            db, customer_id=customer_id, shop_id=shop_id
        )
        if new_limit < to_money(account.current_balance):
            raise ValidationError(
                f"Credit limit {new_limit} is below the outstanding balance "
                f"{to_money(account.current_balance)}"
            )
        previous_limit = to_money(account.credit_limit)

        # Guard re-checked inside the UPDATE against concurrent charges
        result = await db.execute(
            update(CreditAccount)
            .where(CreditAccount.id == account.id)
            .where(CreditAccount.current_balance <= new_limit)
            .values(credit_limit=new_limit)
            .returning(CreditAccount.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            raise ValidationError(
                "Credit limit is below the outstanding balance, please retry"
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(account)
    logger.info(
        "Credit limit for customer %s at shop %s changed %s→%s by %s",
        customer_id,
        shop_id,
        previous_limit,
        new_limit,
        actor_id,
    )
    return account


# ---------------------------------------------------------------------------
# Quick credit sale
# ---------------------------------------------------------------------------


async def quick_credit_sale(
    db: AsyncSession,
    *,
    shop_id: str,
    actor_id: str,
    customer_id: str,
    description: str,
    amount: Decimal,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
    notes: Optional[str] = None,
    recorder: Optional[CommissionRecorder] = None,
) -> tuple[Order, list[str]]:
    """Counter sale on credit: placed, approved and completed in one commit."""
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError("Sale amount must be greater than zero")

    try:
        account = await ledger.get_or_create_account(
            db,
            customer_id=customer_id,
            shop_id=shop_id,
            customer_email=customer_email,
            customer_name=customer_name,
        )
        _check_headroom(account, amount)

        order = Order(
            order_number=Order.generate_order_number(),
            order_type=OrderType.QUICK_CREDIT_SALE,
            shop_id=shop_id,
            customer_id=customer_id,
            customer_email=customer_email,
            customer_name=customer_name,
            payment_method=PaymentMethod.CREDIT,
            delivery_type=DeliveryType.PICKUP,
            order_notes=notes,
            delivery_fee=ZERO,
            subtotal=ZERO,
            total_amount=ZERO,
            credit_amount=ZERO,
            cash_amount=ZERO,
            credit_requested=True,
            credit_approved=True,
            history=[],
            delivery_proof=None,
            return_record=None,
        )
        order.items.append(
            price_item(
                OrderItem(
                    product_id=QUICK_SALE_PRODUCT_ID,
                    name=description,
                    unit_price=amount,
                    quantity=Decimal("1"),
                )
            )
        )
        recompute_totals(order)
        rebalance_payment(order)
        db.add(order)
        await db.flush()

        txn = await ledger.charge_account(
            db,
            account=account,
            amount=order.credit_amount,
            entry_type=LedgerEntryType.CREDIT_PURCHASE,
            idempotency_key=f"credit-approval-{order.id}",
            description=f"Quick credit sale - {description}",
            order_id=order.id,
            recorded_by=actor_id,
        )

        order.credit_approved_at = utc_now()
        set_status(order, OrderStatus.CONFIRMED)
        set_status(order, OrderStatus.COMPLETED)
        append_history(
            order,
            entry_type=ModificationType.CREDIT_APPROVED,
            actor_id=actor_id,
            amount_delta=order.credit_amount,
            to_status=OrderStatus.COMPLETED,
            details={
                "event": "quick_credit_sale",
                "credit_charged": str(order.credit_amount),
                "balance_after": str(txn.balance_after),
            },
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Quick credit sale %s: %s to customer %s at shop %s, balance now %s",
        order.order_number,
        amount,
        customer_id,
        shop_id,
        txn.balance_after,
    )

    warnings = await record_commission_safely(
        db, order=order, trigger=CommissionTrigger.CREDIT_APPROVAL, recorder=recorder
    )
    return await get_order(db, order.id), warnings


# ---------------------------------------------------------------------------
# Listings / reporting
# ---------------------------------------------------------------------------


async def list_shop_accounts(
    db: AsyncSession, *, shop_id: str, skip: int = 0, limit: int = 100
) -> list[CreditAccount]:
    result = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.shop_id == shop_id)
        .order_by(CreditAccount.current_balance.desc(), CreditAccount.created_at)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_customer_accounts(
    db: AsyncSession, *, customer_id: str
) -> list[CreditAccount]:
    result = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.customer_id == customer_id)
        .order_by(CreditAccount.created_at)
    )
    return list(result.scalars().all())


@dataclass
class CreditReport:
    shop_id: str
    generated_at: datetime
    accounts: list[CreditAccount] = field(default_factory=list)

    @property
    def account_count(self) -> int:
        return len(self.accounts)

    @property
    def total_outstanding(self) -> Decimal:
        return sum_money(account.current_balance for account in self.accounts)

    @property
    def total_limit(self) -> Decimal:
        return sum_money(account.credit_limit for account in self.accounts)

    @property
    def utilization_percent(self) -> int:
        if not self.total_limit:
            return 0
        return round(self.total_outstanding / self.total_limit * 100)


async def credit_report(db: AsyncSession, *, shop_id: str) -> CreditReport:
    result = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.shop_id == shop_id)
        .order_by(CreditAccount.current_balance.desc(), CreditAccount.created_at)
    )
    return CreditReport(
        shop_id=shop_id,
        generated_at=utc_now(),
        accounts=list(result.scalars().all()),
    )


CSV_HEADER = [
    "Customer ID",
    "Customer Name",
    "Email",
    "Credit Limit",
    "Current Balance",
    "Available Credit",
    "Utilization %",
]


def credit_report_csv(report: CreditReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for account in report.accounts:
        writer.writerow(
            [
                account.customer_id,
                account.customer_name or "",
                account.customer_email or "",
                to_money(account.credit_limit),
                to_money(account.current_balance),
                to_money(account.available_credit),
                account.utilization_percent,
            ]
        )
    writer.writerow(
        [
            "TOTAL",
            "",
            "",
            report.total_limit,
            report.total_outstanding,
            report.total_limit - report.total_outstanding,
            report.utilization_percent,
        ]
    )
    return buffer.getvalue()
