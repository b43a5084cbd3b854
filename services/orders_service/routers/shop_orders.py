"""Shop staff orders router: status pipeline, credit approval, fulfilment, returns."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_shop_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.models import Order, OrderStatus
from services.orders_service.routers._helpers import (
    eligibility_response,
    get_commission_recorder,
    order_action_response,
)
from services.orders_service.schemas import (
    CancelItemRequest,
    OrderActionResponse,
    OrderCancelRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PreparedItemsResponse,
    ProcessReturnRequest,
    ReturnEligibilityResponse,
    SubstituteItemRequest,
)
from services.orders_service.services.commission import CommissionRecorder
from services.orders_service.services.credit_ops import approve_credit
from services.orders_service.services.fulfillment import (
    cancel_item,
    get_prepared_items,
    set_item_prepared,
    substitute_item,
)
from services.orders_service.services.order_ops import (
    advance_status,
    cancel_order,
    get_shop_order,
    list_shop_orders,
)
from services.orders_service.services.returns import (
    get_return_eligibility,
    process_return,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/shops/{shop_id}/orders", tags=["shop-orders"])


def _prepared_response(
    order: Order, prepared: set[uuid.UUID]
) -> PreparedItemsResponse:
    current = {item.id for item in order.items}
    return PreparedItemsResponse(
        order_id=order.id,
        prepared_item_ids=sorted(prepared, key=str),
        all_prepared=bool(current) and current <= prepared,
    )


# ============================================================================
# ORDERS
# ============================================================================


@router.get("", response_model=OrderListResponse)
async def list_orders_for_shop(
    shop_id: str,
    status: Optional[OrderStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """List the shop's orders, newest first, optionally by status."""
    orders = await list_shop_orders(
        db, shop_id=shop_id, status=status, skip=skip, limit=limit
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        skip=skip,
        limit=limit,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order_for_shop(
    shop_id: str,
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_shop_order(db, order_id=order_id, shop_id=shop_id)


@router.patch("/{order_id}/status", response_model=OrderActionResponse)
async def update_order_status(
    shop_id: str,
    order_id: uuid.UUID,
    status_in: OrderStatusUpdate,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
    recorder: CommissionRecorder = Depends(get_commission_recorder),
):
    """Advance confirmed → preparing → ready → completed, one step at a time."""
    order, warnings = await advance_status(
        db,
        order_id=order_id,
        shop_id=shop_id,
        target=status_in.status,
        actor_id=current_user.user_id,
        recorder=recorder,
    )
    return order_action_response(order, warnings)


@router.post("/{order_id}/approve-credit", response_model=OrderActionResponse)
async def approve_order_credit(
    shop_id: str,
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
    recorder: CommissionRecorder = Depends(get_commission_recorder),
):
    """Charge the order's credit portion to the customer's account and confirm it."""
    order, warnings = await approve_credit(
        db,
        order_id=order_id,
        shop_id=shop_id,
        actor_id=current_user.user_id,
        recorder=recorder,
    )
    return order_action_response(order, warnings)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order_for_shop(
    shop_id: str,
    order_id: uuid.UUID,
    cancel_in: OrderCancelRequest,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await cancel_order(
        db,
        order_id=order_id,
        shop_id=shop_id,
        actor_id=current_user.user_id,
        reason=cancel_in.reason,
    )


# ============================================================================
# FULFILMENT
# ============================================================================


@router.post("/{order_id}/items/{item_id}/substitute", response_model=OrderResponse)
async def substitute_order_item(
    shop_id: str,
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    substitute_in: SubstituteItemRequest,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    return await substitute_item(
        db,
        order_id=order_id,
        shop_id=shop_id,
        item_id=item_id,
        product_id=substitute_in.product_id,
        name=substitute_in.name,
        unit_price=substitute_in.unit_price,
        quantity=substitute_in.quantity,
        unit=substitute_in.unit,
        perishable=substitute_in.perishable,
        reason=substitute_in.reason,
        actor_id=current_user.user_id,
    )


@router.post("/{order_id}/items/{item_id}/cancel", response_model=OrderResponse)
async def cancel_order_item(
    shop_id: str,
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    cancel_in: Optional[CancelItemRequest] = None,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove an unavailable item; removing the last one cancels the order."""
    return await cancel_item(
        db,
        order_id=order_id,
        shop_id=shop_id,
        item_id=item_id,
        reason=cancel_in.reason if cancel_in else None,
        actor_id=current_user.user_id,
    )


@router.get("/{order_id}/prepared-items", response_model=PreparedItemsResponse)
async def list_prepared_items(
    shop_id: str,
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    order, prepared = await get_prepared_items(db, order_id=order_id, shop_id=shop_id)
    return _prepared_response(order, prepared)


@router.put(
    "/{order_id}/items/{item_id}/prepared", response_model=PreparedItemsResponse
)
async def mark_item_prepared(
    shop_id: str,
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    order, prepared = await set_item_prepared(
        db, order_id=order_id, shop_id=shop_id, item_id=item_id, prepared=True
    )
    return _prepared_response(order, prepared)


@router.delete(
    "/{order_id}/items/{item_id}/prepared", response_model=PreparedItemsResponse
)
async def unmark_item_prepared(
    shop_id: str,
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    order, prepared = await set_item_prepared(
        db, order_id=order_id, shop_id=shop_id, item_id=item_id, prepared=False
    )
    return _prepared_response(order, prepared)


# ============================================================================
# RETURNS
# ============================================================================


@router.get("/{order_id}/return-eligibility", response_model=ReturnEligibilityResponse)
async def get_return_eligibility_for_shop(
    shop_id: str,
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_shop_order(db, order_id=order_id, shop_id=shop_id)
    return eligibility_response(order, await get_return_eligibility(db, order))


@router.post("/{order_id}/returns", response_model=OrderResponse)
async def process_order_return(
    shop_id: str,
    order_id: uuid.UUID,
    return_in: ProcessReturnRequest,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Take items back; credit-paid amounts go back onto the customer's balance."""
    return await process_return(
        db,
        order_id=order_id,
        shop_id=shop_id,
        item_ids=return_in.item_ids,
        reason=return_in.reason,
        notes=return_in.notes,
        actor_id=current_user.user_id,
    )
