"""Per-shop settings: return policy, delivery rules, commission override.

Every policy column is nullable; ``None`` means "use the platform default".
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base, JSONType
from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class ShopSettings(Base):
    """Settings row keyed by the shop id issued by the identity provider."""

    __tablename__ = "shop_settings"

    shop_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    shop_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Return policy
    return_window_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_returns: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    perishable_window_hours: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    allowed_return_reasons: Mapped[Optional[list]] = mapped_column(
        JSONType, nullable=True
    )

    # Delivery / pickup
    offers_delivery: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    free_delivery_threshold: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0"
    )
    estimated_delivery_time: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    allows_pickup: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true"
    )
    pickup_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Platform commission override (fraction, e.g. 0.05)
    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 4), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<ShopSettings {self.shop_id}>"
