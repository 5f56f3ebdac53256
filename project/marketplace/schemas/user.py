# marketplace/schemas/user.py

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from marketplace.models.user import Role

class UserResponse(BaseModel):
    """
    Схема ответа API при чтении пользователя.
    Данные пользователя приходят из claims провайдера авторизации.
    """
    id: int
    external_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    is_seller: bool = False
    is_verified: bool = False
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
