"""Order aggregate models: orders, line items, modification history, proofs."""

import random
import string
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.orders_service.models.enums import (
    DeliveryType,
    ModificationType,
    OrderStatus,
    OrderType,
    PaymentMethod,
    RefundMethod,
    enum_values,
)
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# ORDER
# ============================================================================


class Order(Base):
    """Orders.

    ``subtotal``/``total_amount`` are always recomputed from ``items``; the
    ``version`` column makes every UPDATE conditional on the row not having
    changed since it was loaded.
    """

    __tablename__ = "shop_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )
    order_type: Mapped[OrderType] = mapped_column(
        SAEnum(OrderType, values_callable=enum_values, name="order_type_enum"),
        default=OrderType.STANDARD,
        server_default="standard",
    )

    # Parties
    shop_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Money
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Payment breakdown
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod, values_callable=enum_values, name="payment_method_enum"),
        nullable=False,
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    cash_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    credit_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    credit_approved: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )

    # Status
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, values_callable=enum_values, name="order_status_enum"),
        default=OrderStatus.PENDING_APPROVAL,
        server_default="pending_approval",
        index=True,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )

    # Fulfillment
    delivery_type: Mapped[DeliveryType] = mapped_column(
        SAEnum(DeliveryType, values_callable=enum_values, name="delivery_type_enum"),
        default=DeliveryType.PICKUP,
        server_default="pickup",
    )
    delivery_address: Mapped[Optional[dict]] = mapped_column(
        JSONType, nullable=True
    )  # {"street": "...", "city": "...", "phone": "...", "landmark": "..."}
    order_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Commission bookkeeping (secondary effect)
    commission_recorded: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    commission_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )

    # Transition timestamps
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    credit_approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    preparing_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ready_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    returned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="order_subtotal_non_negative"),
        CheckConstraint("credit_amount >= 0", name="order_credit_non_negative"),
        CheckConstraint("cash_amount >= 0", name="order_cash_non_negative"),
        Index("ix_shop_orders_shop_created", "shop_id", "created_at"),
        Index("ix_shop_orders_customer_created", "customer_id", "created_at"),
    )

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        order_by="OrderItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history: Mapped[list["OrderModification"]] = relationship(
        back_populates="order",
        order_by="OrderModification.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    delivery_proof: Mapped[Optional["DeliveryProof"]] = relationship(
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    return_record: Mapped[Optional["ReturnRecord"]] = relationship(
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def involves_credit(self) -> bool:
        return self.payment_method != PaymentMethod.CASH

    @staticmethod
    def generate_order_number() -> str:
        """Generate a unique order number like SC-20260104-A1B2C."""
        date_part = utc_now().strftime("%Y%m%d")
        random_part = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=5)
        )
        return f"SC-{date_part}-{random_part}"

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """Order line items (price snapshot at order time)."""

    __tablename__ = "shop_order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shop_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    perishable: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )

    # Substitution marker: snapshot of the line this one replaced
    substituted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    original_item: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_positive_quantity"),
        CheckConstraint("unit_price >= 0", name="order_item_price_non_negative"),
    )

    order: Mapped["Order"] = relationship(back_populates="items")

    def snapshot(self) -> dict:
        """Plain-dict copy used for audit trails and substitution back-references."""
        return {
            "item_id": str(self.id) if self.id else None,
            "product_id": self.product_id,
            "name": self.name,
            "unit": self.unit,
            "unit_price": str(self.unit_price),
            "quantity": str(self.quantity),
            "total": str(self.total),
            "perishable": bool(self.perishable),
        }

    def __repr__(self):
        return f"<OrderItem {self.name} qty={self.quantity}>"


# ============================================================================
# MODIFICATION HISTORY
# ============================================================================


class OrderModification(Base):
    """Append-only audit trail of every state- or money-affecting change."""

    __tablename__ = "shop_order_modifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("shop_orders.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_type: Mapped[ModificationType] = mapped_column(
        SAEnum(
            ModificationType,
            values_callable=enum_values,
            name="order_modification_type_enum",
        ),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Money moved by this entry (negative = money given back to the customer)
    amount_delta: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="unique_order_history_sequence"),
    )

    order: Mapped["Order"] = relationship(back_populates="history")

    def __repr__(self):
        return f"<OrderModification {self.entry_type} #{self.sequence}>"


# ============================================================================
# DELIVERY PROOF / RETURN RECORD
# ============================================================================


class DeliveryProof(Base):
    """Customer acknowledgement of receipt. One per order, written once."""

    __tablename__ = "shop_order_delivery_proofs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shop_orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    acknowledged: Mapped[bool] = mapped_column(Boolean, default=True)
    acknowledged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    acknowledged_by: Mapped[str] = mapped_column(String(255), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="delivery_proof_rating_range"),
    )

    order: Mapped["Order"] = relationship(back_populates="delivery_proof")


class ReturnRecord(Base):
    """Snapshot of a processed return, kept for audit."""

    __tablename__ = "shop_order_returns"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shop_orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    return_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    returned_items: Mapped[list] = mapped_column(JSONType, nullable=False)
    reason: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    refund_method: Mapped[RefundMethod] = mapped_column(
        SAEnum(RefundMethod, values_callable=enum_values, name="refund_method_enum"),
        nullable=False,
    )
    # What actually came off the ledger (refund floors the balance at zero)
    credit_refund_applied: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    original_payment: Mapped[dict] = mapped_column(JSONType, nullable=False)
    processed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    order: Mapped["Order"] = relationship(back_populates="return_record")
