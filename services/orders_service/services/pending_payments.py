"""Shop-recorded payments awaiting customer confirmation.

Recording a payment never touches the ledger. The balance is reduced exactly
once, when the customer approves it within the confirmation window
(``PENDING_PAYMENT_TTL_HOURS``). Status changes are compare-and-set updates
keyed on ``pending_approval`` so two concurrent decisions cannot both win.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO, to_money
from libs.common.datetime_utils import ensure_aware, utc_now
from libs.common.logging import get_logger
from services.orders_service.errors import ConflictError, ValidationError, not_found
from services.orders_service.models import (
    CreditAccount,
    LedgerEntryType,
    PendingPayment,
    PendingPaymentStatus,
)
from services.orders_service.services import ledger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def hours_remaining(
    payment: PendingPayment, now: Optional[datetime] = None
) -> Optional[float]:
    if payment.status != PendingPaymentStatus.PENDING_APPROVAL:
        return None
    now = now or utc_now()
    remaining = (ensure_aware(payment.expires_at) - now).total_seconds() / 3600
    return round(max(remaining, 0.0), 2)


def is_expired(payment: PendingPayment, now: Optional[datetime] = None) -> bool:
    return ensure_aware(payment.expires_at) <= (now or utc_now())


async def get_pending_payment(
    db: AsyncSession, payment_id: uuid.UUID
) -> PendingPayment:
    result = await db.execute(
        select(PendingPayment)
        .where(PendingPayment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if not payment:
        raise not_found("Pending payment")
    return payment


async def _transition(
    db: AsyncSession,
    payment: PendingPayment,
    new_status: PendingPaymentStatus,
    **values,
) -> bool:
    """CAS ``pending_approval → new_status``; False if someone else decided first."""
    result = await db.execute(
        update(PendingPayment)
        .where(
            PendingPayment.id == payment.id,
            PendingPayment.status == PendingPaymentStatus.PENDING_APPROVAL,
        )
        .values(status=new_status, **values)
        .returning(PendingPayment.id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Shop side
# ---------------------------------------------------------------------------


async def record_payment(
    db: AsyncSession,
    *,
    shop_id: str,
    customer_id: str,
    amount: Decimal,
    actor_id: str,
    actor_email: Optional[str] = None,
    note: Optional[str] = None,
) -> PendingPayment:
    """Record a payment the shop received; it waits for the customer's approval."""
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than zero")

    account = await ledger.require_account(
        db, customer_id=customer_id, shop_id=shop_id
    )
    balance = to_money(account.current_balance)
    if amount > balance:
        raise ValidationError(
            f"Payment {amount} exceeds the outstanding balance {balance}"
        )

    recorded_at = utc_now()
    payment = PendingPayment(
        account_id=account.id,
        customer_id=customer_id,
        shop_id=shop_id,
        customer_email=account.customer_email,
        amount=amount,
        note=note,
        status=PendingPaymentStatus.PENDING_APPROVAL,
        balance_at_record=balance,
        projected_balance=balance - amount,
        recorded_by=actor_id,
        recorded_by_email=actor_email,
        recorded_at=recorded_at,
        expires_at=recorded_at
        + timedelta(hours=get_settings().PENDING_PAYMENT_TTL_HOURS),
    )
    db.add(payment)
    await db.commit()

    logger.info(
        "Recorded pending payment %s: %s from customer %s at shop %s (expires %s)",
        payment.id,
        amount,
        customer_id,
        shop_id,
        payment.expires_at.isoformat(),
    )
    return payment


async def cancel_pending_payment(
    db: AsyncSession,
    *,
    shop_id: str,
    payment_id: uuid.UUID,
    actor_id: str,
) -> PendingPayment:
    payment = await get_pending_payment(db, payment_id)
    if payment.shop_id != shop_id:
        raise not_found("Pending payment")
    if payment.status == PendingPaymentStatus.CANCELLED:
        return payment
    if payment.status != PendingPaymentStatus.PENDING_APPROVAL:
        raise ValidationError(
            f"Cannot cancel a payment that is {payment.status.value}"
        )

    if not await _transition(
        db, payment, PendingPaymentStatus.CANCELLED, cancelled_at=utc_now()
    ):
        await db.rollback()
        payment = await get_pending_payment(db, payment_id)
        if payment.status == PendingPaymentStatus.CANCELLED:
            return payment
        raise ConflictError("Payment was decided concurrently, please retry")
    await db.commit()
    payment = await get_pending_payment(db, payment_id)

    logger.info("Pending payment %s cancelled by %s", payment_id, actor_id)
    return payment


# ---------------------------------------------------------------------------
# Customer side
# ---------------------------------------------------------------------------


async def _customer_payment(
    db: AsyncSession, payment_id: uuid.UUID, customer_id: str
) -> PendingPayment:
    payment = await get_pending_payment(db, payment_id)
    if payment.customer_id != customer_id:
        raise not_found("Pending payment")
    return payment


async def _reject_if_expired(db: AsyncSession, payment: PendingPayment) -> None:
    if not is_expired(payment):
        return
    if await _transition(
        db, payment, PendingPaymentStatus.EXPIRED, expired_at=utc_now()
    ):
        await db.commit()
        logger.info("Pending payment %s expired before approval", payment.id)
    raise ValidationError("The confirmation window for this payment has expired")


async def approve_pending_payment(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    customer_id: str,
) -> tuple[PendingPayment, CreditAccount]:
    """Customer confirms the payment: balance decremented and ``payment`` entry appended, once."""
    payment = await _customer_payment(db, payment_id, customer_id)
    account = await ledger.require_account(
        db, customer_id=payment.customer_id, shop_id=payment.shop_id
    )
    if payment.status == PendingPaymentStatus.APPROVED:
        return payment, account
    if payment.status != PendingPaymentStatus.PENDING_APPROVAL:
        raise ValidationError(
            f"Cannot approve a payment that is {payment.status.value}"
        )
    await _reject_if_expired(db, payment)

    try:
        if not await _transition(
            db,
            payment,
            PendingPaymentStatus.APPROVED,
            approved_at=utc_now(),
            approved_by=customer_id,
        ):
            raise ConflictError("Payment was decided concurrently, please retry")

        account = await ledger.require_account(
            db,
            customer_id=payment.customer_id,
            shop_id=payment.shop_id,
            for_update=True,
        )
        await ledger.reduce_balance(
            db,
            account=account,
            amount=payment.amount,
            entry_type=LedgerEntryType.PAYMENT,
            idempotency_key=f"pending-payment-{payment.id}",
            description=(
                f"Payment received: {payment.note}"
                if payment.note
                else "Payment received"
            ),
            pending_payment_id=payment.id,
            recorded_by=payment.recorded_by,
            metadata={"approved_by": customer_id},
            floor_at_zero=False,
        )
        await db.commit()
    except ConflictError:
        await db.rollback()
        payment = await get_pending_payment(db, payment_id)
        if payment.status != PendingPaymentStatus.APPROVED:
            raise
    except Exception:
        await db.rollback()
        raise

    payment = await get_pending_payment(db, payment_id)
    await db.refresh(account)
    logger.info(
        "Pending payment %s approved by customer %s; balance now %s",
        payment_id,
        customer_id,
        account.current_balance,
    )
    return payment, account


async def dispute_pending_payment(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    customer_id: str,
    reason: str,
) -> PendingPayment:
    """Customer says the payment did not happen as recorded; the ledger is untouched."""
    payment = await _customer_payment(db, payment_id, customer_id)
    if payment.status == PendingPaymentStatus.DISPUTED:
        return payment
    if payment.status != PendingPaymentStatus.PENDING_APPROVAL:
        raise ValidationError(
            f"Cannot dispute a payment that is {payment.status.value}"
        )
    await _reject_if_expired(db, payment)

    if not await _transition(
        db,
        payment,
        PendingPaymentStatus.DISPUTED,
        disputed_at=utc_now(),
        dispute_reason=reason,
    ):
        await db.rollback()
        raise ConflictError("Payment was decided concurrently, please retry")
    await db.commit()

    logger.warning(
        "Pending payment %s disputed by customer %s: %s", payment_id, customer_id, reason
    )
    return await get_pending_payment(db, payment_id)


# ---------------------------------------------------------------------------
# Expiry / listings
# ---------------------------------------------------------------------------


async def expire_stale_payments(
    db: AsyncSession, *, now: Optional[datetime] = None
) -> int:
    """Mark every pending payment past its window as expired. Returns the count."""
    now = now or utc_now()
    result = await db.execute(
        update(PendingPayment)
        .where(
            PendingPayment.status == PendingPaymentStatus.PENDING_APPROVAL,
            PendingPayment.expires_at <= now,
        )
        .values(status=PendingPaymentStatus.EXPIRED, expired_at=now)
        .returning(PendingPayment.id)
        .execution_options(synchronize_session=False)
    )
    expired = len(result.scalars().all())
    await db.commit()
    if expired:
        logger.info("Expired %d stale pending payments", expired)
    return expired


async def list_shop_pending_payments(
    db: AsyncSession,
    *,
    shop_id: str,
    status: Optional[PendingPaymentStatus] = None,
    customer_id: Optional[str] = None,
) -> list[PendingPayment]:
    query = select(PendingPayment).where(PendingPayment.shop_id == shop_id)
    if status:
        query = query.where(PendingPayment.status == status)
    if customer_id:
        query = query.where(PendingPayment.customer_id == customer_id)
    result = await db.execute(query.order_by(PendingPayment.recorded_at.desc()))
    return list(result.scalars().all())


async def list_customer_pending_payments(
    db: AsyncSession,
    *,
    customer_id: str,
    status: Optional[PendingPaymentStatus] = None,
) -> list[PendingPayment]:
    query = select(PendingPayment).where(PendingPayment.customer_id == customer_id)
    if status:
        query = query.where(PendingPayment.status == status)
    result = await db.execute(query.order_by(PendingPayment.recorded_at.desc()))
    return list(result.scalars().all())
