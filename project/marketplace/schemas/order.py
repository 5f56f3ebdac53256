# marketplace/schemas/order.py

from decimal import Decimal
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from marketplace.models.order import OrderStatus, PaymentMethod
from marketplace.schemas.payment import PlatformPaymentDetails


# ────────────── Вход ──────────────
class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=5)


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = PaymentMethod.PAYNOW

    @field_validator("payment_method", mode="before")
    @classmethod
    def parse_payment_method(cls, value):
        return PaymentMethod.parse(value)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value):
        return OrderStatus.parse(value)


class PaymentProofSubmit(BaseModel):
    payment_proof: str = Field(..., min_length=1, description="Путь/URL загруженной квитанции")


# ────────────── Выход ──────────────
class OrderItem(BaseModel):
    id: int
    product_id: int
    seller_id: int
    name: str
    image: Optional[str] = None
    quantity: int
    price: Decimal

    model_config = {
        "from_attributes": True
    }


class Order(BaseModel):
    id: int
    user_id: int
    shipping_full_name: str
    shipping_address: str
    shipping_city: str
    shipping_phone: str
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    payment_status: Optional[str] = None
    payment_proof: Optional[str] = None
    total_price: Decimal
    status: OrderStatus
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItem] = []

    model_config = {
        "from_attributes": True
    }


class SellerOrder(Order):
    """Заказ глазами продавца: только его позиции и его сумма."""
    seller_total: Decimal


class OrderCreateResponse(BaseModel):
    id: int
    status: OrderStatus
    total_price: Decimal
    payment_method: PaymentMethod
    redirect_url: Optional[str] = None
    payment_details: Optional[PlatformPaymentDetails] = None
    message: str


class OrderStatusEvent(BaseModel):
    id: int
    order_id: int
    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    actor: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class SellerStats(BaseModel):
    total_earnings: Decimal
    total_orders: int
    pending_orders: int


class OrderPage(BaseModel):
    orders: List[Order]
    total_orders: int
    total_pages: int
    current_page: int
