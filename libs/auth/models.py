from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    The current actor as supplied by the identity provider.

    ``user_id`` is the stable id used as ``customer_id`` on orders and credit
    accounts. Shop staff tokens additionally carry the ``shop_id`` they act for.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    shop_id: Optional[str] = None

    @property
    def display(self) -> str:
        return self.email or self.user_id
