"""Pydantic request/response schemas for the Orders Service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from services.orders_service.models import (
    DeliveryType,
    LedgerEntryType,
    ModificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PendingPaymentStatus,
    RefundMethod,
)

# ---------------------------------------------------------------------------
# Order placement
# ---------------------------------------------------------------------------


class DeliveryAddress(BaseModel):
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=5, max_length=20)
    landmark: Optional[str] = Field(None, max_length=255)
    pincode: Optional[str] = Field(None, max_length=10)


class OrderItemCreate(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    unit_price: Decimal = Field(..., ge=0)
    quantity: Decimal = Field(..., gt=0)
    unit: Optional[str] = Field(None, max_length=50)
    perishable: bool = False


class OrderCreate(BaseModel):
    shop_id: str = Field(..., min_length=1, max_length=255)
    items: list[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    delivery_type: DeliveryType = DeliveryType.PICKUP
    delivery_address: Optional[DeliveryAddress] = None
    credit_amount: Optional[Decimal] = Field(None, ge=0)
    cash_amount: Optional[Decimal] = Field(None, ge=0)
    customer_name: Optional[str] = Field(None, max_length=255)
    order_notes: Optional[str] = Field(None, max_length=1000)


# ---------------------------------------------------------------------------
# Order responses
# ---------------------------------------------------------------------------


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    position: int
    product_id: str
    name: str
    unit: Optional[str] = None
    unit_price: Decimal
    quantity: Decimal
    total: Decimal
    perishable: bool
    substituted: bool
    original_item: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


class OrderModificationResponse(BaseModel):
    sequence: int
    entry_type: ModificationType
    actor_id: str
    amount_delta: Decimal
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    details: Optional[dict] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeliveryProofResponse(BaseModel):
    acknowledged: bool
    acknowledged_at: datetime
    acknowledged_by: str
    rating: int
    customer_notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ReturnRecordResponse(BaseModel):
    return_date: datetime
    returned_items: list[dict]
    reason: str
    notes: Optional[str] = None
    refund_amount: Decimal
    refund_method: RefundMethod
    credit_refund_applied: Decimal
    original_payment: dict
    processed_by: str
    processed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    order_type: OrderType
    shop_id: str
    customer_id: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    status: OrderStatus
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    credit_amount: Decimal
    cash_amount: Decimal
    credit_requested: bool
    credit_approved: bool
    delivery_type: DeliveryType
    delivery_address: Optional[dict] = None
    order_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    commission_recorded: bool
    commission_amount: Optional[Decimal] = None
    items: list[OrderItemResponse] = []
    history: list[OrderModificationResponse] = []
    delivery_proof: Optional[DeliveryProofResponse] = None
    return_record: Optional[ReturnRecordResponse] = None
    confirmed_at: Optional[datetime] = None
    credit_approved_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    skip: int
    limit: int


class OrderActionResponse(BaseModel):
    """An updated order plus warnings from secondary effects that did not block it."""

    order: OrderResponse
    warnings: list[str] = []


# ---------------------------------------------------------------------------
# Staff order actions
# ---------------------------------------------------------------------------


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=100)


class SubstituteItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    unit_price: Decimal = Field(..., ge=0)
    quantity: Decimal = Field(..., gt=0)
    unit: Optional[str] = Field(None, max_length=50)
    perishable: bool = False
    reason: Optional[str] = Field(None, max_length=255)


class CancelItemRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class PreparedItemsResponse(BaseModel):
    order_id: uuid.UUID
    prepared_item_ids: list[uuid.UUID]
    all_prepared: bool


# ---------------------------------------------------------------------------
# Returns / acknowledgement
# ---------------------------------------------------------------------------


class ReturnEligibilityResponse(BaseModel):
    order_id: uuid.UUID
    eligible: bool
    reason: Optional[str] = None
    hours_elapsed: Optional[float] = None
    hours_remaining: Optional[float] = None
    return_window_hours: int
    perishable_window_hours: int
    allowed_reasons: list[str]


class ProcessReturnRequest(BaseModel):
    item_ids: list[uuid.UUID] = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class AcknowledgeRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    notes: Optional[str] = Field(None, max_length=1000)


# ---------------------------------------------------------------------------
# Credit accounts
# ---------------------------------------------------------------------------


class CreditAccountResponse(BaseModel):
    id: uuid.UUID
    customer_id: str
    shop_id: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    credit_limit: Decimal
    current_balance: Decimal
    available_credit: Decimal
    utilization_percent: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditTransactionResponse(BaseModel):
    id: uuid.UUID
    entry_type: LedgerEntryType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    order_id: Optional[uuid.UUID] = None
    pending_payment_id: Optional[uuid.UUID] = None
    description: str
    recorded_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditTransactionListResponse(BaseModel):
    account: CreditAccountResponse
    transactions: list[CreditTransactionResponse]
    skip: int
    limit: int


class CreditLimitUpdate(BaseModel):
    credit_limit: Decimal = Field(..., ge=0)


class QuickCreditSaleRequest(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_name: Optional[str] = Field(None, max_length=255)
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)


class CreditReportRow(BaseModel):
    customer_id: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    credit_limit: Decimal
    current_balance: Decimal
    available_credit: Decimal
    utilization_percent: int


class CreditReportResponse(BaseModel):
    shop_id: str
    generated_at: datetime
    account_count: int
    total_outstanding: Decimal
    total_limit: Decimal
    utilization_percent: int
    accounts: list[CreditReportRow]


# ---------------------------------------------------------------------------
# Pending payments
# ---------------------------------------------------------------------------


class RecordPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    note: Optional[str] = Field(None, max_length=500)


class DisputePaymentRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PendingPaymentResponse(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    customer_id: str
    shop_id: str
    amount: Decimal
    note: Optional[str] = None
    status: PendingPaymentStatus
    balance_at_record: Decimal
    projected_balance: Decimal
    recorded_by: str
    recorded_by_email: Optional[str] = None
    recorded_at: datetime
    expires_at: datetime
    hours_remaining: Optional[float] = None
    approved_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    expired_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PendingPaymentActionResponse(BaseModel):
    payment: PendingPaymentResponse
    account: CreditAccountResponse


# ---------------------------------------------------------------------------
# Shop settings
# ---------------------------------------------------------------------------


class ShopSettingsUpdate(BaseModel):
    shop_name: Optional[str] = Field(None, max_length=255)
    return_window_hours: Optional[int] = Field(None, ge=0, le=24 * 30)
    allow_returns: Optional[bool] = None
    perishable_window_hours: Optional[int] = Field(None, ge=0, le=24 * 30)
    allowed_return_reasons: Optional[list[str]] = None
    offers_delivery: Optional[bool] = None
    delivery_fee: Optional[Decimal] = Field(None, ge=0)
    free_delivery_threshold: Optional[Decimal] = Field(None, ge=0)
    estimated_delivery_time: Optional[str] = Field(None, max_length=100)
    allows_pickup: Optional[bool] = None
    pickup_instructions: Optional[str] = Field(None, max_length=1000)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)

    @model_validator(mode="after")
    def non_nullable_flags(self):
        for name in (
            "offers_delivery",
            "allows_pickup",
            "delivery_fee",
            "free_delivery_threshold",
        ):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ReturnPolicyResponse(BaseModel):
    return_window_hours: int
    allow_returns: bool
    perishable_window_hours: int
    allowed_reasons: list[str]


class DeliverySettingsResponse(BaseModel):
    offers_delivery: bool
    delivery_fee: Decimal
    free_delivery_threshold: Decimal
    allows_pickup: bool


class ShopSettingsResponse(BaseModel):
    shop_id: str
    shop_name: Optional[str] = None
    return_policy: ReturnPolicyResponse
    delivery: DeliverySettingsResponse
    commission_rate: Optional[Decimal] = None

