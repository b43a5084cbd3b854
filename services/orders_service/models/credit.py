"""Credit ledger models: accounts, immutable history, pending payments."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from services.orders_service.models.enums import (
    LedgerEntryType,
    PendingPaymentStatus,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class CreditAccount(Base):
    """A customer's running balance with one shop.

    Never deleted. ``current_balance`` is only ever changed through atomic
    ``balance = balance ± x`` updates in ``services.ledger``.
    """

    __tablename__ = "credit_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    shop_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    credit_limit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("customer_id", "shop_id", name="unique_customer_shop_account"),
        CheckConstraint("current_balance >= 0", name="credit_balance_non_negative"),
        CheckConstraint(
            "current_balance <= credit_limit", name="credit_balance_within_limit"
        ),
        CheckConstraint("credit_limit >= 0", name="credit_limit_non_negative"),
    )

    transactions: Mapped[list["CreditTransaction"]] = relationship(
        back_populates="account",
        order_by="CreditTransaction.created_at",
        lazy="selectin",
    )

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.current_balance

    @property
    def utilization_percent(self) -> int:
        if not self.credit_limit:
            return 0
        return round(self.current_balance / self.credit_limit * 100)

    def __repr__(self):
        return (
            f"<CreditAccount {self.customer_id}@{self.shop_id} "
            f"balance={self.current_balance}/{self.credit_limit}>"
        )


class CreditTransaction(Base):
    """Payment history entry. Immutable; positive = purchase, negative = payment/refund."""

    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("credit_accounts.id"), nullable=False, index=True
    )
    idempotency_key: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        SAEnum(
            LedgerEntryType,
            values_callable=enum_values,
            name="ledger_entry_type_enum",
            validate_strings=True,
        ),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    pending_payment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    recorded_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    entry_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="credit_transaction_amount_non_zero"),
        Index("ix_credit_transactions_account_created", "account_id", "created_at"),
    )

    account: Mapped["CreditAccount"] = relationship(back_populates="transactions")

    def __repr__(self):
        return f"<CreditTransaction {self.entry_type.value} {self.amount}>"


class PendingPayment(Base):
    """A shop-recorded payment awaiting customer confirmation.

    Does not touch the ledger until approved.
    """

    __tablename__ = "credit_pending_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("credit_accounts.id"), nullable=False
    )
    customer_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    shop_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[PendingPaymentStatus] = mapped_column(
        SAEnum(
            PendingPaymentStatus,
            values_callable=enum_values,
            name="pending_payment_status_enum",
        ),
        default=PendingPaymentStatus.PENDING_APPROVAL,
        server_default="pending_approval",
        index=True,
    )

    # Balance snapshot at record time (display only; approval re-validates)
    balance_at_record: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    projected_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)
    recorded_by_email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    disputed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispute_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="pending_payment_amount_positive"),
        Index("ix_credit_pending_payments_shop_status", "shop_id", "status"),
    )

    def __repr__(self):
        return f"<PendingPayment {self.id} {self.amount} status={self.status}>"
