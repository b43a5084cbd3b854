"""Shop staff credit router: accounts, limits, payments, quick sales, reports."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from libs.auth.dependencies import require_shop_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.models import PendingPaymentStatus
from services.orders_service.routers._helpers import (
    get_commission_recorder,
    order_action_response,
    pending_payment_response,
)
from services.orders_service.schemas import (
    CreditAccountResponse,
    CreditLimitUpdate,
    CreditReportResponse,
    CreditReportRow,
    CreditTransactionListResponse,
    CreditTransactionResponse,
    OrderActionResponse,
    PendingPaymentResponse,
    QuickCreditSaleRequest,
    RecordPaymentRequest,
)
from services.orders_service.services import ledger
from services.orders_service.services.commission import CommissionRecorder
from services.orders_service.services.credit_ops import (
    credit_report,
    credit_report_csv,
    list_shop_accounts,
    quick_credit_sale,
    set_credit_limit,
)
from services.orders_service.services.pending_payments import (
    cancel_pending_payment,
    list_shop_pending_payments,
    record_payment,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/shops/{shop_id}/credit", tags=["shop-credit"])


# ============================================================================
# ACCOUNTS
# ============================================================================


@router.get("/accounts", response_model=list[CreditAccountResponse])
async def list_credit_accounts(
    shop_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Customer accounts, largest outstanding balance first."""
    return await list_shop_accounts(db, shop_id=shop_id, skip=skip, limit=limit)


@router.get(
    "/accounts/{customer_id}", response_model=CreditTransactionListResponse
)
async def get_credit_account(
    shop_id: str,
    customer_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    account = await ledger.require_account(
        db, customer_id=customer_id, shop_id=shop_id
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


@router.put("/accounts/{customer_id}/limit", response_model=CreditAccountResponse)
async def update_credit_limit(
    shop_id: str,
    customer_id: str,
    limit_in: CreditLimitUpdate,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Set a customer's limit; rejected if below what they already owe."""
    return await set_credit_limit(
        db,
        shop_id=shop_id,
        customer_id=customer_id,
        new_limit=limit_in.credit_limit,
        actor_id=current_user.user_id,
    )


# ============================================================================
# PAYMENTS
# ============================================================================


@router.post(
    "/accounts/{customer_id}/payments",
    response_model=PendingPaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_customer_payment(
    shop_id: str,
    customer_id: str,
    payment_in: RecordPaymentRequest,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Record a payment received; the customer must confirm it within the window."""
    payment = await record_payment(
        db,
        shop_id=shop_id,
        customer_id=customer_id,
        amount=payment_in.amount,
        note=payment_in.note,
        actor_id=current_user.user_id,
        actor_email=current_user.email,
    )
    return pending_payment_response(payment)


@router.get("/pending-payments", response_model=list[PendingPaymentResponse])
async def list_pending_payments(
    shop_id: str,
    status: Optional[PendingPaymentStatus] = None,
    customer_id: Optional[str] = None,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    payments = await list_shop_pending_payments(
        db, shop_id=shop_id, status=status, customer_id=customer_id
    )
    return [pending_payment_response(payment) for payment in payments]


@router.post(
    "/pending-payments/{payment_id}/cancel", response_model=PendingPaymentResponse
)
async def cancel_recorded_payment(
    shop_id: str,
    payment_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    payment = await cancel_pending_payment(
        db, shop_id=shop_id, payment_id=payment_id, actor_id=current_user.user_id
    )
    return pending_payment_response(payment)


# ============================================================================
# QUICK SALE
# ============================================================================


@router.post(
    "/quick-sale",
    response_model=OrderActionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_quick_credit_sale(
    shop_id: str,
    sale_in: QuickCreditSaleRequest,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
    recorder: CommissionRecorder = Depends(get_commission_recorder),
):
    """Counter sale put straight onto the customer's credit account."""
    order, warnings = await quick_credit_sale(
        db,
        shop_id=shop_id,
        actor_id=current_user.user_id,
        customer_id=sale_in.customer_id,
        customer_email=sale_in.customer_email,
        customer_name=sale_in.customer_name,
        description=sale_in.description,
        amount=sale_in.amount,
        notes=sale_in.notes,
        recorder=recorder,
    )
    return order_action_response(order, warnings)


# ============================================================================
# REPORTS
# ============================================================================


@router.get("/report", response_model=CreditReportResponse)
async def get_credit_report(
    shop_id: str,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    report = await credit_report(db, shop_id=shop_id)
    return CreditReportResponse(
        shop_id=report.shop_id,
        generated_at=report.generated_at,
        account_count=report.account_count,
        total_outstanding=report.total_outstanding,
        total_limit=report.total_limit,
        utilization_percent=report.utilization_percent,
        accounts=[
            CreditReportRow(
                customer_id=account.customer_id,
                customer_name=account.customer_name,
                customer_email=account.customer_email,
                credit_limit=account.credit_limit,
                current_balance=account.current_balance,
                available_credit=account.available_credit,
                utilization_percent=account.utilization_percent,
            )
            for account in report.accounts
        ],
    )


@router.get("/report.csv")
async def export_credit_report(
    shop_id: str,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Download the credit report as CSV."""
    report = await credit_report(db, shop_id=shop_id)
    filename = f"credit-report-{shop_id}-{report.generated_at:%Y%m%d}.csv"
    return Response(
        content=credit_report_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
