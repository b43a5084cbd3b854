"""Shop policy lookup: return policy, delivery settings, commission override.

Unset columns fall back to platform defaults, so a shop that never saved its
settings still gets a usable policy.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from libs.common.currency import ZERO, to_money
from libs.common.logging import get_logger
from services.orders_service.models import ShopSettings
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

DEFAULT_RETURN_WINDOW_HOURS = 24
DEFAULT_ALLOW_RETURNS = True
DEFAULT_PERISHABLE_WINDOW_HOURS = 6
DEFAULT_RETURN_REASONS = ("damaged", "wrong_item", "quality_issues")


@dataclass(frozen=True)
class ReturnPolicy:
    return_window_hours: int = DEFAULT_RETURN_WINDOW_HOURS
    allow_returns: bool = DEFAULT_ALLOW_RETURNS
    perishable_window_hours: int = DEFAULT_PERISHABLE_WINDOW_HOURS
    allowed_reasons: tuple[str, ...] = field(default=DEFAULT_RETURN_REASONS)


@dataclass(frozen=True)
class DeliverySettings:
    offers_delivery: bool = False
    delivery_fee: Decimal = ZERO
    free_delivery_threshold: Decimal = ZERO
    allows_pickup: bool = True


async def get_shop_settings(db: AsyncSession, shop_id: str) -> Optional[ShopSettings]:
    result = await db.execute(
        select(ShopSettings).where(ShopSettings.shop_id == shop_id)
    )
    return result.scalar_one_or_none()


def return_policy_from(settings: Optional[ShopSettings]) -> ReturnPolicy:
    if settings is None:
        return ReturnPolicy()
    reasons = settings.allowed_return_reasons
    return ReturnPolicy(
        return_window_hours=(
            settings.return_window_hours
            if settings.return_window_hours is not None
            else DEFAULT_RETURN_WINDOW_HOURS
        ),
        allow_returns=(
            settings.allow_returns
            if settings.allow_returns is not None
            else DEFAULT_ALLOW_RETURNS
        ),
        perishable_window_hours=(
            settings.perishable_window_hours
            if settings.perishable_window_hours is not None
            else DEFAULT_PERISHABLE_WINDOW_HOURS
        ),
        allowed_reasons=tuple(reasons) if reasons else DEFAULT_RETURN_REASONS,
    )


def delivery_settings_from(settings: Optional[ShopSettings]) -> DeliverySettings:
    if settings is None:
        return DeliverySettings()
    return DeliverySettings(
        offers_delivery=bool(settings.offers_delivery),
        delivery_fee=to_money(settings.delivery_fee),
        free_delivery_threshold=to_money(settings.free_delivery_threshold),
        allows_pickup=(
            settings.allows_pickup if settings.allows_pickup is not None else True
        ),
    )


async def get_return_policy(db: AsyncSession, shop_id: str) -> ReturnPolicy:
    return return_policy_from(await get_shop_settings(db, shop_id))


async def get_delivery_settings(db: AsyncSession, shop_id: str) -> DeliverySettings:
    return delivery_settings_from(await get_shop_settings(db, shop_id))


async def upsert_shop_settings(
    db: AsyncSession,
    *,
    shop_id: str,
    changes: dict,
) -> ShopSettings:
    """Create or partially update a shop's settings row.

    ``changes`` holds only the fields the caller explicitly sent; an explicit
    ``None`` clears an override back to the platform default.
    """
    settings = await get_shop_settings(db, shop_id)
    if settings is None:
        settings = ShopSettings(shop_id=shop_id)
        db.add(settings)

    for field_name, value in changes.items():
        setattr(settings, field_name, value)

    await db.commit()
    await db.refresh(settings)
    logger.info("Updated settings for shop %s: %s", shop_id, sorted(changes))
    return settings
