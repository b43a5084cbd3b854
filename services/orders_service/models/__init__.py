"""Orders Service models package."""

from services.orders_service.models.commission import CommissionRecord
from services.orders_service.models.credit import (
    CreditAccount,
    CreditTransaction,
    PendingPayment,
)
from services.orders_service.models.enums import (
    EDITABLE_STATUSES,
    RETURNABLE_STATUSES,
    CommissionStatus,
    CommissionTrigger,
    DeliveryType,
    LedgerEntryType,
    ModificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PendingPaymentStatus,
    RefundMethod,
)
from services.orders_service.models.order import (
    DeliveryProof,
    Order,
    OrderItem,
    OrderModification,
    ReturnRecord,
)
from services.orders_service.models.shop import ShopSettings

__all__ = [
    "EDITABLE_STATUSES",
    "RETURNABLE_STATUSES",
    "CommissionRecord",
    "CommissionStatus",
    "CommissionTrigger",
    "CreditAccount",
    "CreditTransaction",
    "DeliveryProof",
    "DeliveryType",
    "LedgerEntryType",
    "ModificationType",
    "Order",
    "OrderItem",
    "OrderModification",
    "OrderStatus",
    "OrderType",
    "PaymentMethod",
    "PendingPayment",
    "PendingPaymentStatus",
    "RefundMethod",
    "ReturnRecord",
    "ShopSettings",
]
