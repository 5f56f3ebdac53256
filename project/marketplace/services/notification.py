# marketplace/services/notification.py

"""
Рассылка уведомлений о заказах (email + SMS).

Диспетчер создаётся в lifespan и хранится в app.state.notifier; каналы
передаются в конструктор, поэтому в тестах их легко подменить.
Реальные провайдеры (SMTP, Africa's Talking) подключаются как отдельные
каналы; по умолчанию каналы пишут сообщения в лог.

Ошибки каналов логируются и никогда не пробрасываются наружу: статус заказа
к моменту рассылки уже сохранён.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from marketplace.utils.log import Log


@dataclass(frozen=True)
class Recipient:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class ItemNotice:
    name: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class OrderNotice:
    """Снимок заказа для уведомления (не зависит от сессии БД)."""
    order_id: int
    status: str
    total_price: Decimal
    items: List[ItemNotice] = field(default_factory=list)
    tracking_number: Optional[str] = None

    @classmethod
    def from_order(cls, order, items=None) -> "OrderNotice":
        items = order.items if items is None else items
        return cls(
            order_id=order.id,
            status=order.status.value,
            total_price=order.total_price,
            items=[ItemNotice(i.name, i.quantity, i.price) for i in items],
            tracking_number=order.tracking_number,
        )


STATUS_MESSAGES = {
    "CONFIRMED": "Your WyZar order #{id} has been confirmed and is being processed.",
    "PAID": "Your payment for WyZar order #{id} has been confirmed.",
    "SHIPPED": "Great news! Your WyZar order #{id} has been shipped and is on its way to you.",
    "DELIVERED": "Your WyZar order #{id} has been delivered. Thank you for shopping with us!",
    "CANCELLED": "Your WyZar order #{id} has been cancelled. If you have any questions, please contact support.",
}


class NotificationChannel:
    """Канал доставки. kind определяет, какой адрес получателя использовать."""
    kind = "email"

    async def send(self, address: str, subject: str, message: str) -> None:
        raise NotImplementedError


class LogEmailChannel(NotificationChannel):
    kind = "email"

    def __init__(self, log: Log):
        self.log = log

    async def send(self, address: str, subject: str, message: str) -> None:
        await self.log.log_info("notify", f"email → {address}: {subject}", {"message": message})


class LogSmsChannel(NotificationChannel):
    kind = "sms"

    def __init__(self, log: Log):
        self.log = log

    async def send(self, address: str, subject: str, message: str) -> None:
        await self.log.log_info("notify", f"sms → {address}", {"message": message})


class NotificationDispatcher:
    def __init__(self, channels: List[NotificationChannel], log: Log, timeout: float = 10.0):
        self.channels = channels
        self.log = log
        self.timeout = timeout

    async def order_placed(self, notice: OrderNotice, buyer: Recipient):
        """Подтверждение покупателю о созданном заказе."""
        lines = "\n".join(f"- {i.name} x{i.quantity} @ {i.price}" for i in notice.items)
        message = (
            f"Thank you for your order #{notice.order_id}.\n{lines}\n"
            f"Order Total: ${notice.total_price}"
        )
        await self._dispatch("order_placed", notice, buyer, f"Order Confirmation - #{notice.order_id}", message)

    async def seller_new_order(self, notice: OrderNotice, seller: Recipient):
        """Продавцу: новый заказ с его позициями."""
        lines = "\n".join(f"- {i.name} x{i.quantity}" for i in notice.items)
        message = f"You have received a new order #{notice.order_id}:\n{lines}"
        await self._dispatch("seller_new_order", notice, seller, f"New Order Received - #{notice.order_id}", message)

    async def order_status(self, notice: OrderNotice, buyer: Recipient):
        """Покупателю: смена статуса заказа."""
        template = STATUS_MESSAGES.get(
            notice.status, "Your WyZar order #{id} status has been updated to: " + notice.status
        )
        message = template.format(id=notice.order_id)
        if notice.status == "SHIPPED" and notice.tracking_number:
            message += f" Tracking number: {notice.tracking_number}."
        await self._dispatch("order_status", notice, buyer, f"Order Update - #{notice.order_id}", message)

    async def _dispatch(self, event: str, notice: OrderNotice, recipient: Recipient, subject: str, message: str):
        for channel in self.channels:
            address = recipient.email if channel.kind == "email" else recipient.phone
            if not address:
                continue
            try:
                await asyncio.wait_for(channel.send(address, subject, message), timeout=self.timeout)
            except Exception as e:
                await self.log.log_error(
                    "notify",
                    f"Не удалось отправить уведомление {event}: {e!r}",
                    {"order_id": notice.order_id, "channel": channel.kind},
                )
