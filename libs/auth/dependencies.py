from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import ValidationError

from libs.common.config import get_settings
from libs.auth.models import AuthUser

settings = get_settings()
security = HTTPBearer()

SHOP_STAFF_ROLES = {"shop_owner", "shop_staff"}
PLATFORM_ROLE = "service_role"


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthUser:
    """
    Validate the identity provider's JWT and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token.credentials,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
        # Custom claims live under app_metadata
        app_metadata = payload.get("app_metadata") or {}
        payload.setdefault("shop_id", app_metadata.get("shop_id"))
        if app_metadata.get("role"):
            payload["role"] = app_metadata["role"]
        return AuthUser(**payload)

    except (JWTError, ValidationError):
        raise credentials_exception


async def require_shop_staff(
    shop_id: str,
    current_user: Annotated[AuthUser, Depends(get_current_user)],
) -> AuthUser:
    """
    Ensure the caller is staff of the shop named in the path (or the platform).
    """
    if current_user.role == PLATFORM_ROLE:
        return current_user
    if current_user.role not in SHOP_STAFF_ROLES or current_user.shop_id != shop_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Shop staff privileges required",
        )
    return current_user
