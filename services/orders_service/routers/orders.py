"""Customer orders router: placement, order history, acknowledgement."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.routers._helpers import eligibility_response
from services.orders_service.schemas import (
    AcknowledgeRequest,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    ReturnEligibilityResponse,
)
from services.orders_service.services.acknowledgement import acknowledge_order
from services.orders_service.services.order_ops import (
    get_customer_order,
    list_customer_orders,
    place_order,
)
from services.orders_service.services.returns import get_return_eligibility
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_in: OrderCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Place an order. Credit orders wait for the shop to approve the credit."""
    return await place_order(
        db,
        shop_id=order_in.shop_id,
        customer_id=current_user.user_id,
        customer_email=current_user.email,
        customer_name=order_in.customer_name,
        items=order_in.items,
        payment_method=order_in.payment_method,
        delivery_type=order_in.delivery_type,
        delivery_address=order_in.delivery_address,
        credit_amount=order_in.credit_amount,
        cash_amount=order_in.cash_amount,
        order_notes=order_in.order_notes,
    )


@router.get("/me", response_model=OrderListResponse)
async def list_my_orders(
    shop_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the current customer's orders, newest first."""
    orders = await list_customer_orders(
        db, customer_id=current_user.user_id, shop_id=shop_id, skip=skip, limit=limit
    )
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        skip=skip,
        limit=limit,
    )


@router.get("/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await get_customer_order(
        db, order_id=order_id, customer_id=current_user.user_id
    )


@router.post("/{order_id}/acknowledge", response_model=OrderResponse)
async def acknowledge_my_order(
    order_id: uuid.UUID,
    ack_in: AcknowledgeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Confirm receipt of a completed order and rate it."""
    return await acknowledge_order(
        db,
        order_id=order_id,
        customer_id=current_user.user_id,
        rating=ack_in.rating,
        notes=ack_in.notes,
    )


@router.get("/{order_id}/return-eligibility", response_model=ReturnEligibilityResponse)
async def get_my_return_eligibility(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await get_customer_order(
        db, order_id=order_id, customer_id=current_user.user_id
    )
    return eligibility_response(order, await get_return_eligibility(db, order))
