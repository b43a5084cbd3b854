"""Enum definitions for orders service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    ACKNOWLEDGED = "acknowledged"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    PARTIALLY_RETURNED = "partially_returned"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT = "credit"
    SPLIT = "split"


class DeliveryType(str, enum.Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class OrderType(str, enum.Enum):
    STANDARD = "standard"
    QUICK_CREDIT_SALE = "quick_credit_sale"


class ModificationType(str, enum.Enum):
    STATUS_CHANGE = "status_change"
    CREDIT_APPROVED = "credit_approved"
    SUBSTITUTION = "substitution"
    QUANTITY_MERGE = "quantity_merge"
    ITEM_CANCELLATION = "item_cancellation"
    CANCELLATION = "cancellation"
    RETURN_PROCESSED = "return_processed"
    CUSTOMER_ACKNOWLEDGMENT = "customer_acknowledgment"


class LedgerEntryType(str, enum.Enum):
    CREDIT_PURCHASE = "credit_purchase"
    PAYMENT = "payment"
    RETURN_REFUND = "return_refund"
    CREDIT_ADJUSTMENT = "credit_adjustment"
    CANCELLATION_REFUND = "cancellation_refund"


class PendingPaymentStatus(str, enum.Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    DISPUTED = "disputed"


class RefundMethod(str, enum.Enum):
    CREDIT_BALANCE = "credit_balance"
    CASH = "cash"


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    WAIVED = "waived"


class CommissionTrigger(str, enum.Enum):
    CREDIT_APPROVAL = "credit_approval"
    ORDER_COMPLETED = "order_completed"


# Statuses in which items may still be substituted or cancelled
EDITABLE_STATUSES = frozenset(
    {OrderStatus.PENDING_APPROVAL, OrderStatus.CONFIRMED, OrderStatus.PREPARING}
)

# Delivered states from which a return may be processed
RETURNABLE_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.ACKNOWLEDGED})
