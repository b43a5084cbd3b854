"""create_orders_and_credit_tables

Revision ID: c3a1f0e2b901
Revises:
Create Date: 2026-10-12 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "c3a1f0e2b901"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_STATUS = sa.Enum(
    "pending_approval",
    "confirmed",
    "preparing",
    "ready",
    "completed",
    "acknowledged",
    "cancelled",
    "returned",
    "partially_returned",
    name="order_status_enum",
)
ORDER_TYPE = sa.Enum("standard", "quick_credit_sale", name="order_type_enum")
PAYMENT_METHOD = sa.Enum("cash", "credit", "split", name="payment_method_enum")
COMMISSION_PAYMENT_METHOD = sa.Enum(
    "cash", "credit", "split", name="commission_payment_method_enum"
)
DELIVERY_TYPE = sa.Enum("pickup", "delivery", name="delivery_type_enum")
MODIFICATION_TYPE = sa.Enum(
    "status_change",
    "credit_approved",
    "substitution",
    "quantity_merge",
    "item_cancellation",
    "cancellation",
    "return_processed",
    "customer_acknowledgment",
    name="order_modification_type_enum",
)
REFUND_METHOD = sa.Enum("credit_balance", "cash", name="refund_method_enum")
LEDGER_ENTRY_TYPE = sa.Enum(
    "credit_purchase",
    "payment",
    "return_refund",
    "credit_adjustment",
    "cancellation_refund",
    name="ledger_entry_type_enum",
)
PENDING_PAYMENT_STATUS = sa.Enum(
    "pending_approval",
    "approved",
    "cancelled",
    "expired",
    "disputed",
    name="pending_payment_status_enum",
)
COMMISSION_TRIGGER = sa.Enum(
    "credit_approval", "order_completed", name="commission_trigger_enum"
)
COMMISSION_STATUS = sa.Enum("pending", "paid", "waived", name="commission_status_enum")

ALL_ENUMS = (
    ORDER_STATUS,
    ORDER_TYPE,
    PAYMENT_METHOD,
    COMMISSION_PAYMENT_METHOD,
    DELIVERY_TYPE,
    MODIFICATION_TYPE,
    REFUND_METHOD,
    LEDGER_ENTRY_TYPE,
    PENDING_PAYMENT_STATUS,
    COMMISSION_TRIGGER,
    COMMISSION_STATUS,
)

JSONB = postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    """Upgrade schema."""
    # ---- orders ----
    op.create_table(
        "shop_orders",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_number", sa.String(length=20), nullable=False),
        sa.Column("order_type", ORDER_TYPE, server_default="standard", nullable=False),
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("delivery_fee", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False),
        sa.Column("credit_amount", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("cash_amount", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("credit_requested", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("credit_approved", sa.Boolean(), server_default="false", nullable=True),
        sa.Column(
            "status", ORDER_STATUS, server_default="pending_approval", nullable=True
        ),
        sa.Column("cancellation_reason", sa.String(length=100), nullable=True),
        sa.Column("delivery_type", DELIVERY_TYPE, server_default="pickup", nullable=True),
        sa.Column("delivery_address", JSONB, nullable=True),
        sa.Column("order_notes", sa.Text(), nullable=True),
        sa.Column(
            "commission_recorded", sa.Boolean(), server_default="false", nullable=True
        ),
        sa.Column("commission_id", sa.UUID(), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("credit_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preparing_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ready_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("subtotal >= 0", name="order_subtotal_non_negative"),
        sa.CheckConstraint("credit_amount >= 0", name="order_credit_non_negative"),
        sa.CheckConstraint("cash_amount >= 0", name="order_cash_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_shop_orders_order_number", "shop_orders", ["order_number"], unique=True
    )
    op.create_index("ix_shop_orders_shop_id", "shop_orders", ["shop_id"])
    op.create_index("ix_shop_orders_customer_id", "shop_orders", ["customer_id"])
    op.create_index("ix_shop_orders_status", "shop_orders", ["status"])
    op.create_index(
        "ix_shop_orders_shop_created", "shop_orders", ["shop_id", "created_at"]
    )
    op.create_index(
        "ix_shop_orders_customer_created", "shop_orders", ["customer_id", "created_at"]
    )

    op.create_table(
        "shop_order_items",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("perishable", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("substituted", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("original_item", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("quantity > 0", name="order_item_positive_quantity"),
        sa.CheckConstraint("unit_price >= 0", name="order_item_price_non_negative"),
        sa.ForeignKeyConstraint(["order_id"], ["shop_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_shop_order_items_order_id", "shop_order_items", ["order_id"])

    op.create_table(
        "shop_order_modifications",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("entry_type", MODIFICATION_TYPE, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("amount_delta", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column("from_status", sa.String(length=50), nullable=True),
        sa.Column("to_status", sa.String(length=50), nullable=True),
        sa.Column("details", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["shop_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "order_id", "sequence", name="unique_order_history_sequence"
        ),
    )

    op.create_table(
        "shop_order_delivery_proofs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("acknowledged", sa.Boolean(), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", sa.String(length=255), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="delivery_proof_rating_range"),
        sa.ForeignKeyConstraint(["order_id"], ["shop_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )

    op.create_table(
        "shop_order_returns",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("return_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_items", JSONB, nullable=False),
        sa.Column("reason", sa.String(length=100), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("refund_method", REFUND_METHOD, nullable=False),
        sa.Column(
            "credit_refund_applied", sa.Numeric(12, 2), server_default="0", nullable=True
        ),
        sa.Column("original_payment", JSONB, nullable=False),
        sa.Column("processed_by", sa.String(length=255), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["shop_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )

    # ---- credit ledger ----
    op.create_table(
        "credit_accounts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("credit_limit", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "current_balance", sa.Numeric(12, 2), server_default="0", nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("current_balance >= 0", name="credit_balance_non_negative"),
        sa.CheckConstraint(
            "current_balance <= credit_limit", name="credit_balance_within_limit"
        ),
        sa.CheckConstraint("credit_limit >= 0", name="credit_limit_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "customer_id", "shop_id", name="unique_customer_shop_account"
        ),
    )
    op.create_index("ix_credit_accounts_customer_id", "credit_accounts", ["customer_id"])
    op.create_index("ix_credit_accounts_shop_id", "credit_accounts", ["shop_id"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("entry_type", LEDGER_ENTRY_TYPE, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_before", sa.Numeric(12, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column("pending_payment_id", sa.UUID(), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("recorded_by", sa.String(length=255), nullable=True),
        sa.Column("entry_metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount <> 0", name="credit_transaction_amount_non_zero"),
        sa.ForeignKeyConstraint(["account_id"], ["credit_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_credit_transactions_idempotency_key",
        "credit_transactions",
        ["idempotency_key"],
        unique=True,
    )
    op.create_index(
        "ix_credit_transactions_account_id", "credit_transactions", ["account_id"]
    )
    op.create_index(
        "ix_credit_transactions_account_created",
        "credit_transactions",
        ["account_id", "created_at"],
    )

    op.create_table(
        "credit_pending_payments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("account_id", sa.UUID(), nullable=False),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column(
            "status",
            PENDING_PAYMENT_STATUS,
            server_default="pending_approval",
            nullable=True,
        ),
        sa.Column("balance_at_record", sa.Numeric(12, 2), nullable=False),
        sa.Column("projected_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("recorded_by", sa.String(length=255), nullable=False),
        sa.Column("recorded_by_email", sa.String(length=255), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="pending_payment_amount_positive"),
        sa.ForeignKeyConstraint(["account_id"], ["credit_accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_credit_pending_payments_customer_id",
        "credit_pending_payments",
        ["customer_id"],
    )
    op.create_index(
        "ix_credit_pending_payments_shop_id", "credit_pending_payments", ["shop_id"]
    )
    op.create_index(
        "ix_credit_pending_payments_status", "credit_pending_payments", ["status"]
    )
    op.create_index(
        "ix_credit_pending_payments_shop_status",
        "credit_pending_payments",
        ["shop_id", "status"],
    )

    # ---- shop settings / commission ----
    op.create_table(
        "shop_settings",
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("shop_name", sa.String(length=255), nullable=True),
        sa.Column("return_window_hours", sa.Integer(), nullable=True),
        sa.Column("allow_returns", sa.Boolean(), nullable=True),
        sa.Column("perishable_window_hours", sa.Integer(), nullable=True),
        sa.Column("allowed_return_reasons", JSONB, nullable=True),
        sa.Column("offers_delivery", sa.Boolean(), server_default="false", nullable=True),
        sa.Column("delivery_fee", sa.Numeric(12, 2), server_default="0", nullable=True),
        sa.Column(
            "free_delivery_threshold",
            sa.Numeric(12, 2),
            server_default="0",
            nullable=True,
        ),
        sa.Column("estimated_delivery_time", sa.String(length=100), nullable=True),
        sa.Column("allows_pickup", sa.Boolean(), server_default="true", nullable=True),
        sa.Column("pickup_instructions", sa.Text(), nullable=True),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("shop_id"),
    )

    op.create_table(
        "platform_commissions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("shop_id", sa.String(length=255), nullable=False),
        sa.Column("shop_name", sa.String(length=255), nullable=True),
        sa.Column("customer_id", sa.String(length=255), nullable=False),
        sa.Column("sale_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", COMMISSION_PAYMENT_METHOD, nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("trigger", COMMISSION_TRIGGER, nullable=False),
        sa.Column("status", COMMISSION_STATUS, server_default="pending", nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_platform_commissions_order_id",
        "platform_commissions",
        ["order_id"],
        unique=True,
    )
    op.create_index(
        "ix_platform_commissions_shop_id", "platform_commissions", ["shop_id"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("platform_commissions")
    op.drop_table("shop_settings")
    op.drop_table("credit_pending_payments")
    op.drop_table("credit_transactions")
    op.drop_table("credit_accounts")
    op.drop_table("shop_order_returns")
    op.drop_table("shop_order_delivery_proofs")
    op.drop_table("shop_order_modifications")
    op.drop_table("shop_order_items")
    op.drop_table("shop_orders")

    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.drop(bind, checkfirst=True)
