# marketplace/schemas/product.py

from decimal import Decimal
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

# ────────────── Базовая схема ──────────────
class ProductBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    quantity: int = Field(1, ge=0)

# ────────────── Схема для CREATE ──────────────
class ProductCreate(ProductBase):
    pass

# ────────────── Схема для UPDATE ──────────────
class ProductUpdate(BaseModel):
    """Передаются только те поля, которые нужно изменить."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    quantity: Optional[int] = Field(None, ge=0)

# ────────────── Схема для RESPONSE ──────────────
class Product(ProductBase):
    id: int
    seller_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
