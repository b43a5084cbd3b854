"""Credit ledger primitives: account lookup and atomic balance deltas.

Every balance change is a single ``UPDATE ... SET current_balance =
current_balance ± :amount`` whose guard (limit or floor) lives in the WHERE
clause, paired with an immutable ``CreditTransaction``. Nothing here commits;
the calling operation owns the transaction so ledger and order changes land
together or not at all.
"""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO, to_money
from libs.common.logging import get_logger
from services.orders_service.errors import ConflictError, ValidationError, not_found
from services.orders_service.models import (
    CreditAccount,
    CreditTransaction,
    LedgerEntryType,
)
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


async def get_account(
    db: AsyncSession,
    *,
    customer_id: str,
    shop_id: str,
    for_update: bool = False,
) -> Optional[CreditAccount]:
    query = select(CreditAccount).where(
        CreditAccount.customer_id == customer_id,
        CreditAccount.shop_id == shop_id,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def require_account(
    db: AsyncSession, *, customer_id: str, shop_id: str, for_update: bool = False
) -> CreditAccount:
    account = await get_account(
        db, customer_id=customer_id, shop_id=shop_id, for_update=for_update
    )
    if not account:
        raise not_found("Credit account")
    return account


async def get_or_create_account(
    db: AsyncSession,
    *,
    customer_id: str,
    shop_id: str,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> CreditAccount:
    """Load the (customer, shop) account row locked, creating it on first use.

    New accounts start at zero balance with the platform default limit. If a
    concurrent request creates the same account first, the whole unit of work
    is rolled back (including the caller's pending changes, and every instance
    in the session is expired) and ``ConflictError`` is raised; callers must
    reload anything they still need.
    """
    account = await get_account(
        db, customer_id=customer_id, shop_id=shop_id, for_update=True
    )
    if account:
        return account

    account = CreditAccount(
        customer_id=customer_id,
        shop_id=shop_id,
        customer_email=customer_email,
        customer_name=customer_name,
        credit_limit=to_money(get_settings().DEFAULT_CREDIT_LIMIT),
        current_balance=ZERO,
    )
    db.add(account)
    try:
        await db.flush()
    except IntegrityError:
        # Another request created the same account first
        await db.rollback()
        raise ConflictError("Credit account was created concurrently, please retry")

    logger.info(
        "Opened credit account %s for customer %s at shop %s (limit=%s)",
        account.id,
        customer_id,
        shop_id,
        account.credit_limit,
    )
    return account


async def _existing_entry(
    db: AsyncSession, idempotency_key: str
) -> Optional[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction).where(
            CreditTransaction.idempotency_key == idempotency_key
        )
    )
    return result.scalar_one_or_none()


def _entry(
    account: CreditAccount,
    *,
    entry_type: LedgerEntryType,
    amount: Decimal,
    balance_before: Decimal,
    balance_after: Decimal,
    idempotency_key: str,
    description: str,
    order_id: Optional[uuid.UUID],
    pending_payment_id: Optional[uuid.UUID],
    recorded_by: Optional[str],
    metadata: Optional[dict],
) -> CreditTransaction:
    return CreditTransaction(
        account_id=account.id,
        idempotency_key=idempotency_key,
        entry_type=entry_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        order_id=order_id,
        pending_payment_id=pending_payment_id,
        description=description,
        recorded_by=recorded_by,
        entry_metadata=metadata,
    )


# ---------------------------------------------------------------------------
# Increase balance (purchases, upward adjustments)
# ---------------------------------------------------------------------------


async def charge_account(
    db: AsyncSession,
    *,
    account: CreditAccount,
    amount: Decimal,
    entry_type: LedgerEntryType,
    idempotency_key: str,
    description: str,
    order_id: Optional[uuid.UUID] = None,
    recorded_by: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> CreditTransaction:
    """Atomically add ``amount`` to the balance; never exceeds the credit limit.

    A replayed ``idempotency_key`` returns the original entry untouched.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError("Charge amount must be greater than zero")

    existing = await _existing_entry(db, idempotency_key)
    if existing:
        logger.info(
            "Idempotent replay for key=%s → txn=%s", idempotency_key, existing.id
        )
        return existing

    balance_before = to_money(account.current_balance)
    result = await db.execute(
        update(CreditAccount)
        .where(CreditAccount.id == account.id)
        .where(CreditAccount.current_balance + amount <= CreditAccount.credit_limit)
        .values(current_balance=CreditAccount.current_balance + amount)
        .returning(CreditAccount.current_balance)
        .execution_options(synchronize_session=False)
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        available = to_money(account.credit_limit) - balance_before
        raise ValidationError(
            f"Credit limit exceeded: {amount} requested but only "
            f"{available} available (limit {to_money(account.credit_limit)})"
        )
    new_balance = to_money(new_balance)
    set_committed_value(account, "current_balance", new_balance)

    txn = _entry(
        account,
        entry_type=entry_type,
        amount=amount,
        balance_before=new_balance - amount,
        balance_after=new_balance,
        idempotency_key=idempotency_key,
        description=description,
        order_id=order_id,
        pending_payment_id=None,
        recorded_by=recorded_by,
        metadata=metadata,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        "Charged %s to credit account %s (key=%s), balance %s→%s",
        amount,
        account.id,
        idempotency_key,
        new_balance - amount,
        new_balance,
    )
    return txn


# ---------------------------------------------------------------------------
# Decrease balance (payments, refunds, releases)
# ---------------------------------------------------------------------------


async def reduce_balance(
    db: AsyncSession,
    *,
    account: CreditAccount,
    amount: Decimal,
    entry_type: LedgerEntryType,
    idempotency_key: str,
    description: str,
    order_id: Optional[uuid.UUID] = None,
    pending_payment_id: Optional[uuid.UUID] = None,
    recorded_by: Optional[str] = None,
    metadata: Optional[dict] = None,
    floor_at_zero: bool = True,
) -> Optional[CreditTransaction]:
    """Atomically subtract ``amount`` from the balance.

    With ``floor_at_zero`` (refunds, releases) the balance stops at zero and
    the entry records what was actually applied; nothing is written when the
    balance was already zero. Without it (payments) the whole amount must be
    covered by the balance or the call is rejected.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than zero")

    existing = await _existing_entry(db, idempotency_key)
    if existing:
        logger.info(
            "Idempotent replay for key=%s → txn=%s", idempotency_key, existing.id
        )
        return existing

    # Read the pre-image under lock so the applied (possibly floored) amount is exact
    locked = await db.execute(
        select(CreditAccount.current_balance)
        .where(CreditAccount.id == account.id)
        .with_for_update()
    )
    balance_before = to_money(locked.scalar_one())

    stmt = update(CreditAccount).where(CreditAccount.id == account.id)
    if floor_at_zero:
        stmt = stmt.values(
            current_balance=case(
                (CreditAccount.current_balance <= amount, ZERO),
                else_=CreditAccount.current_balance - amount,
            )
        )
    else:
        stmt = stmt.where(CreditAccount.current_balance >= amount).values(
            current_balance=CreditAccount.current_balance - amount
        )
    result = await db.execute(
        stmt.returning(CreditAccount.current_balance).execution_options(
            synchronize_session=False
        )
    )
    new_balance = result.scalar_one_or_none()
    if new_balance is None:
        raise ValidationError(
            f"Amount {amount} exceeds the outstanding balance {balance_before}"
        )
    new_balance = to_money(new_balance)
    set_committed_value(account, "current_balance", new_balance)

    applied = balance_before - new_balance
    if applied <= ZERO:
        logger.info(
            "Balance already zero on account %s; nothing applied for key=%s",
            account.id,
            idempotency_key,
        )
        return None

    entry_metadata = dict(metadata or {})
    if applied != amount:
        entry_metadata["requested_amount"] = str(amount)

    txn = _entry(
        account,
        entry_type=entry_type,
        amount=-applied,
        balance_before=balance_before,
        balance_after=new_balance,
        idempotency_key=idempotency_key,
        description=description,
        order_id=order_id,
        pending_payment_id=pending_payment_id,
        recorded_by=recorded_by,
        metadata=entry_metadata or None,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        "Reduced credit account %s by %s (key=%s), balance %s→%s",
        account.id,
        applied,
        idempotency_key,
        balance_before,
        new_balance,
    )
    return txn


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def list_transactions(
    db: AsyncSession,
    *,
    account_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.account_id == account_id)
        .order_by(CreditTransaction.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())
