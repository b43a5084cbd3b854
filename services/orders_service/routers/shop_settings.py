"""Shop settings router: return policy, delivery options, commission override."""

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import PLATFORM_ROLE, require_shop_staff
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.orders_service.routers._helpers import shop_settings_response
from services.orders_service.schemas import ShopSettingsResponse, ShopSettingsUpdate
from services.orders_service.services.shop_settings import (
    get_shop_settings,
    upsert_shop_settings,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/shops/{shop_id}/settings", tags=["shop-settings"])


@router.get("", response_model=ShopSettingsResponse)
async def get_settings_for_shop(
    shop_id: str,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    """Effective settings; platform defaults fill anything the shop has not set."""
    return shop_settings_response(shop_id, await get_shop_settings(db, shop_id))


@router.patch("", response_model=ShopSettingsResponse)
async def update_settings_for_shop(
    shop_id: str,
    settings_in: ShopSettingsUpdate,
    current_user: AuthUser = Depends(require_shop_staff),
    db: AsyncSession = Depends(get_async_db),
):
    changes = settings_in.model_dump(exclude_unset=True)
    if "commission_rate" in changes and current_user.role != PLATFORM_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the platform can change the commission rate",
        )
    settings = await upsert_shop_settings(db, shop_id=shop_id, changes=changes)
    return shop_settings_response(shop_id, settings)
