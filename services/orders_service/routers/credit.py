"""Customer credit router: own accounts, history, pending payment decisions."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.models import PendingPaymentStatus
from services.orders_service.routers._helpers import pending_payment_response
from services.orders_service.schemas import (
    CreditAccountResponse,
    CreditTransactionListResponse,
    CreditTransactionResponse,
    DisputePaymentRequest,
    PendingPaymentActionResponse,
    PendingPaymentResponse,
)
from services.orders_service.services import ledger
from services.orders_service.services.credit_ops import list_customer_accounts
from services.orders_service.services.pending_payments import (
    approve_pending_payment,
    dispute_pending_payment,
    list_customer_pending_payments,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/credit", tags=["credit"])


@router.get("/accounts/me", response_model=list[CreditAccountResponse])
async def list_my_credit_accounts(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Every shop the current customer has a running balance with."""
    return await list_customer_accounts(db, customer_id=current_user.user_id)


@router.get(
    "/accounts/me/{shop_id}/transactions",
    response_model=CreditTransactionListResponse,
)
async def list_my_credit_transactions(
    shop_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    account = await ledger.require_account(
        db, customer_id=current_user.user_id, shop_id=shop_id
    )
    transactions = await ledger.list_transactions(
        db, account_id=account.id, limit=limit, offset=skip
    )
    return CreditTransactionListResponse(
        account=CreditAccountResponse.model_validate(account),
        transactions=[
            CreditTransactionResponse.model_validate(txn) for txn in transactions
        ],
        skip=skip,
        limit=limit,
    )


@router.get("/pending-payments/me", response_model=list[PendingPaymentResponse])
async def list_my_pending_payments(
    status: Optional[PendingPaymentStatus] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    payments = await list_customer_pending_payments(
        db, customer_id=current_user.user_id, status=status
    )
    return [pending_payment_response(payment) for payment in payments]


@router.post(
    "/pending-payments/{payment_id}/approve",
    response_model=PendingPaymentActionResponse,
)
async def approve_my_pending_payment(
    payment_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Confirm a payment the shop recorded; the balance drops by its amount."""
    payment, account = await approve_pending_payment(
        db, payment_id=payment_id, customer_id=current_user.user_id
    )
    return PendingPaymentActionResponse(
        payment=pending_payment_response(payment),
        account=CreditAccountResponse.model_validate(account),
    )


@router.post(
    "/pending-payments/{payment_id}/dispute", response_model=PendingPaymentResponse
)
async def dispute_my_pending_payment(
    payment_id: uuid.UUID,
    dispute_in: DisputePaymentRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    payment = await dispute_pending_payment(
        db,
        payment_id=payment_id,
        customer_id=current_user.user_id,
        reason=dispute_in.reason,
    )
    return pending_payment_response(payment)
