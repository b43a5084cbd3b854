"""Platform commission records written by the default commission recorder."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.orders_service.models.enums import (
    CommissionStatus,
    CommissionTrigger,
    PaymentMethod,
    enum_values,
)
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class CommissionRecord(Base):
    """Commission owed to the platform for one order."""

    __tablename__ = "platform_commissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, index=True, nullable=False
    )
    shop_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    shop_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False)

    sale_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(
            PaymentMethod,
            values_callable=enum_values,
            name="commission_payment_method_enum",
        ),
        nullable=False,
    )
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    trigger: Mapped[CommissionTrigger] = mapped_column(
        SAEnum(
            CommissionTrigger,
            values_callable=enum_values,
            name="commission_trigger_enum",
        ),
        nullable=False,
    )
    status: Mapped[CommissionStatus] = mapped_column(
        SAEnum(
            CommissionStatus,
            values_callable=enum_values,
            name="commission_status_enum",
        ),
        default=CommissionStatus.PENDING,
        server_default="pending",
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<CommissionRecord order={self.order_id} {self.commission_amount}>"
