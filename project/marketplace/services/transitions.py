# marketplace/services/transitions.py

"""
Переходы статуса заказа.

Все изменения статуса (вебхук Paynow, ручное подтверждение оплаты, действия
продавца и администратора) проходят через transition_order():

    PENDING   → CONFIRMED | PAID | CANCELLED
    CONFIRMED → SHIPPED | CANCELLED
    PAID      → SHIPPED | CANCELLED
    SHIPPED   → DELIVERED

Статус, отметка времени, движение склада, запись комиссии и запись журнала
сохраняются одной транзакцией. Обновление строки идёт по условию
"статус всё ещё тот, что мы прочитали" (compare-and-set): если параллельный
запрос успел раньше, переход считается выполненным без изменений.
Уведомление покупателю отправляется после commit и на результат не влияет.
"""

from collections import defaultdict
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from marketplace.config import settings
from marketplace.models.commission import CommissionRecord as CommissionModel
from marketplace.models.order import Order as OrderModel, OrderStatus, OrderStatusEvent as OrderStatusEventModel, PaymentMethod
from marketplace.models.product import Product as ProductModel
from marketplace.services.commission import compute_commission
from marketplace.services.notification import OrderNotice, Recipient
from marketplace.services.order import load_order, can_manage_order
from marketplace.services.profile import read_users_by_ids
from marketplace.utils.database import utcnow
from marketplace.utils.errors import AuthorizationError, InvalidTransitionError, NotFoundError, OutOfStockError, PersistenceError

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

# Повтор перехода в эти статусы не ошибка, а пустая операция (дубль вебхука)
IDEMPOTENT_TARGETS = {OrderStatus.PAID}

# В этих статусах товар списан со склада
STOCK_RESERVED = {OrderStatus.CONFIRMED, OrderStatus.PAID}

TIMESTAMP_FIELDS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


@dataclass
class TransitionResult:
    order: OrderModel
    changed: bool
    previous: OrderStatus


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


async def transition_order(
    order_id: int,
    target,
    actor: str,
    request: Request,
    *,
    note: str | None = None,
    tracking_number: str | None = None,
    payment: dict | None = None,
) -> TransitionResult:
    """
    Переводит заказ в статус target.

    :param actor: кто инициировал переход ("admin:1", "seller:5", "paynow", "system")
    :param payment: поля оплаты для записи вместе со статусом (payment_reference, payment_status)
    :raises InvalidTransitionError: переход не разрешён
    :raises NotFoundError: заказа нет
    :raises OutOfStockError: товара на складе меньше, чем в заказе (ничего не сохранено)
    :raises PersistenceError: ошибка БД, ничего не сохранено
    """
    db = request.state.db
    log = request.app.state.log
    target = OrderStatus.parse(target)

    order = await load_order(db, order_id)
    if order is None:
        await log.log_error("order", "Заказ не найден для смены статуса", {"id": order_id})
        raise NotFoundError("Заказ не найден")

    current = order.status
    if current == target and target in IDEMPOTENT_TARGETS:
        await log.log_info("order", f"Заказ уже в статусе {target.value}, изменений нет", {"id": order_id, "actor": actor})
        return TransitionResult(order, False, current)

    if not is_allowed(current, target):
        await log.log_warning("order", f"Недопустимый переход {current.value} → {target.value}", {"id": order_id, "actor": actor})
        raise InvalidTransitionError(f"Нельзя сменить статус заказа с {current.value} на {target.value}")

    now = utcnow()
    values = {"status": target, "updated_at": now}
    timestamp_field = TIMESTAMP_FIELDS.get(target)
    if timestamp_field and getattr(order, timestamp_field) is None:
        values[timestamp_field] = now
    if tracking_number:
        values["tracking_number"] = tracking_number
    if payment:
        values.update(payment)

    try:
        result = await db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Статус изменил параллельный запрос
            await db.rollback()
            order = await load_order(db, order_id)
            await log.log_warning("order", "Статус заказа уже изменён параллельным запросом", {
                "id": order_id, "expected": current, "actual": order.status, "actor": actor,
            })
            return TransitionResult(order, False, current)

        if current not in STOCK_RESERVED and target in STOCK_RESERVED:
            short_product = await _move_stock(db, order, -1)
            if short_product is not None:
                await db.rollback()
                await log.log_warning("order", "Недостаточно товара для списания", {
                    "id": order_id, "product_id": short_product, "target": target, "actor": actor,
                })
                raise OutOfStockError(f"Недостаточно товара на складе (товар {short_product})")
        elif current in STOCK_RESERVED and target == OrderStatus.CANCELLED:
            await _move_stock(db, order, +1)

        if target == OrderStatus.PAID:
            rate = settings.COMMISSION_RATE
            commission = compute_commission(order.total_price, rate)
            db.add(CommissionModel(
                order_id=order_id,
                rate=rate,
                total_price=order.total_price,
                platform_fee=commission.platform_fee,
                seller_payout=commission.seller_payout,
            ))

        db.add(OrderStatusEventModel(
            order_id=order_id,
            from_status=current,
            to_status=target,
            actor=actor,
            note=note,
        ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        await log.log_error("order", f"Ошибка сохранения смены статуса: {e}", {"id": order_id, "target": target})
        raise PersistenceError()

    order = await load_order(db, order_id)
    await log.log_info("order", f"Статус заказа изменён {current.value} → {target.value}", {"id": order_id, "actor": actor})

    await notify_status_change(order, request)
    return TransitionResult(order, True, current)


async def _move_stock(db, order: OrderModel, direction: int) -> int | None:
    """
    Списывает (direction=-1) или возвращает (+1) товар по позициям заказа.
    Списание условное: остаток не уходит в минус. Возвращает ID первого
    товара, которого не хватило (вызывающий откатывает транзакцию), иначе None.
    """
    per_product = defaultdict(int)
    for item in order.items:
        per_product[item.product_id] += item.quantity
    for product_id, quantity in per_product.items():
        query = update(ProductModel).where(ProductModel.id == product_id)
        if direction < 0:
            query = query.where(ProductModel.quantity >= quantity)
        result = await db.execute(
            query
            .values(quantity=ProductModel.quantity + direction * quantity)
            .execution_options(synchronize_session=False)
        )
        if direction < 0 and result.rowcount == 0:
            return product_id
    return None


async def notify_status_change(order: OrderModel, request: Request):
    """Уведомление покупателю; ошибки только логируются."""
    log = request.app.state.log
    try:
        buyers = await read_users_by_ids([order.user_id], request)
        buyer = buyers.get(order.user_id)
        if buyer is None:
            return
        await request.app.state.notifier.order_status(
            OrderNotice.from_order(order),
            Recipient(buyer.name, buyer.email, buyer.phone),
        )
    except Exception as e:
        await log.log_error("notify", f"Ошибка уведомления о смене статуса: {e!r}", {"order_id": order.id})


# ────────────── Смена статуса продавцом / администратором ──────────────
async def update_order_status_service(order_id: int, update_data, user, request: Request) -> OrderModel:
    """
    PUT /order/{id}/status и PUT /admin/orders/{id}/status.

    Наложенный платёж: продавец подтверждает заказ (CONFIRMED) и отмечает
    получение денег (PAID). Для Paynow, EcoCash и банковского перевода оба
    статуса недоступны: заказ остаётся PENDING до подтверждения оплаты шлюзом
    или проверки квитанции, иначе пришедший платёж некуда будет записать.
    """
    log = request.app.state.log

    order = await load_order(request.state.db, order_id)
    if order is None:
        await log.log_error("order", "Заказ не найден", {"id": order_id})
        raise NotFoundError("Заказ не найден")
    if not can_manage_order(order, user):
        await log.log_warning("order", "Попытка сменить статус чужого заказа", {"id": order_id, "user_id": user.id})
        raise AuthorizationError("Статус может менять продавец заказа или администратор")
    cash_on_delivery = order.payment_method == PaymentMethod.CASH_ON_DELIVERY
    if update_data.status in (OrderStatus.CONFIRMED, OrderStatus.PAID) and not cash_on_delivery:
        await log.log_warning("order", f"{update_data.status.value} вручную для предоплаченного заказа", {
            "id": order_id, "payment_method": order.payment_method, "user_id": user.id,
        })
        raise InvalidTransitionError("Оплата подтверждается через платёжный шлюз или проверку квитанции")

    actor = f"admin:{user.id}" if user.is_admin else f"seller:{user.id}"
    payment = None
    if update_data.status == OrderStatus.PAID:
        payment = {"payment_status": "Cash received"}
    result = await transition_order(
        order_id,
        update_data.status,
        actor,
        request,
        tracking_number=update_data.tracking_number,
        payment=payment,
    )
    return result.order
