# marketplace/models/order.py

import enum
import re

from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from marketplace.utils.database import Base, utcnow


class OrderStatus(str, enum.Enum):
    """
    Единственное внутреннее представление статуса заказа.
    Внешние строки ('Paid', 'paid', 'PAID') приводятся через parse().
    """
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().upper()
        if key not in cls.__members__:
            raise ValueError(f"Неизвестный статус заказа: {value}")
        return cls[key]


class PaymentMethod(str, enum.Enum):
    ECOCASH = "ECOCASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    PAYNOW = "PAYNOW"

    @classmethod
    def parse(cls, value) -> "PaymentMethod":
        """Принимает 'EcoCash', 'BankTransfer', 'CASH_ON_DELIVERY', 'paynow' и т.п."""
        if isinstance(value, cls):
            return value
        key = re.sub(r"[^A-Z]", "", str(value or "").upper())
        for member in cls:
            if member.name.replace("_", "") == key:
                return member
        raise ValueError(f"Неизвестный способ оплаты: {value}")

    @property
    def is_manual(self) -> bool:
        """Оплата вне шлюза, подтверждается администратором по квитанции."""
        return self in (PaymentMethod.ECOCASH, PaymentMethod.BANK_TRANSFER)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # покупатель

    # Адрес доставки
    shipping_full_name = Column(String, nullable=False)
    shipping_address = Column(String, nullable=False)
    shipping_city = Column(String, nullable=False)
    shipping_phone = Column(String, nullable=False)

    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=False)
    payment_reference = Column(String, nullable=True)   # paynowreference / MANUAL_ / DEV_
    payment_status = Column(String, nullable=True)      # текст статуса от шлюза
    poll_url = Column(String, nullable=True)            # URL опроса Paynow
    payment_proof = Column(String, nullable=True)       # ссылка на квитанцию

    total_price = Column(Numeric(12, 2), nullable=False)  # фиксируется при создании
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PENDING, index=True)
    tracking_number = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")

    @property
    def seller_ids(self) -> set[int]:
        return {item.seller_id for item in self.items}


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    image = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)  # цена за единицу на момент заказа

    order = relationship("Order", back_populates="items")

    @property
    def subtotal(self):
        return self.price * self.quantity


class OrderStatusEvent(Base):
    """Журнал смены статусов (аудит)."""
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    from_status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=True)
    to_status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False)
    actor = Column(String, nullable=False)   # "admin:3", "seller:7", "paynow", "system"
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
