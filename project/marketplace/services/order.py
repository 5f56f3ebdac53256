# marketplace/services/order.py

import math
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from fastapi import Request

from marketplace.models.order import (
    Order as OrderModel,
    OrderItem as OrderItemModel,
    OrderStatus,
    OrderStatusEvent as OrderStatusEventModel,
)
from marketplace.models.product import Product as ProductModel
from marketplace.models.commission import CommissionRecord as CommissionModel
from marketplace.schemas.order import OrderCreate
from marketplace.services.commission import compute_commission, to_money
from marketplace.services.notification import OrderNotice, Recipient
from marketplace.services.profile import read_users_by_ids
from marketplace.utils.errors import NotFoundError, AuthorizationError, OutOfStockError, PersistenceError


# Заказы, которые продавец ещё должен отправить
AWAITING_SHIPMENT = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PAID)
# Заказы, по которым продавцу причитается выплата
EARNING_STATUSES = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)


async def load_order(db, id: int) -> OrderModel | None:
    """Читает заказ с позициями; populate_existing обновляет объект из identity map."""
    result = await db.execute(
        select(OrderModel).where(OrderModel.id == id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def can_view_order(order: OrderModel, user) -> bool:
    return user.is_admin or order.user_id == user.id or user.id in order.seller_ids


def can_manage_order(order: OrderModel, user) -> bool:
    """Статусом управляет администратор или продавец хотя бы одной позиции."""
    return user.is_admin or (user.is_seller and user.id in order.seller_ids)


async def create_order_service(order: OrderCreate, buyer, request: Request) -> OrderModel:
    """
    Создание нового заказа в статусе PENDING.

    Цены берутся из БД (а не от клиента) и фиксируются в позициях заказа;
    total_price = сумма price * quantity и больше не пересчитывается.
    """
    db = request.state.db
    log = request.app.state.log

    # Одинаковые товары в корзине складываем
    wanted = defaultdict(int)
    for item in order.items:
        wanted[item.product_id] += item.quantity

    result = await db.execute(select(ProductModel).where(ProductModel.id.in_(list(wanted))))
    products = {p.id: p for p in result.scalars().all()}

    items = []
    total = Decimal("0.00")
    for product_id, quantity in wanted.items():
        product = products.get(product_id)
        if product is None:
            await log.log_error("order", "Товар не найден", {"product_id": product_id})
            raise NotFoundError(f"Товар {product_id} не найден")
        if quantity > product.quantity:
            await log.log_warning("order", "Недостаточно товара", {"product_id": product_id, "wanted": quantity, "stock": product.quantity})
            raise OutOfStockError(f"Недостаточно товара на складе: {product.name}")

        price = to_money(product.price)
        total += price * quantity
        items.append(OrderItemModel(
            product_id=product.id,
            seller_id=product.seller_id,
            name=product.name,
            image=product.image,
            quantity=quantity,
            price=price,
        ))

    address = order.shipping_address
    db_order = OrderModel(
        user_id=buyer.id,
        shipping_full_name=address.full_name,
        shipping_address=address.address,
        shipping_city=address.city,
        shipping_phone=address.phone,
        payment_method=order.payment_method,
        total_price=to_money(total),
        status=OrderStatus.PENDING,
        items=items,
    )

    try:
        db.add(db_order)
        await db.flush()
        db.add(OrderStatusEventModel(
            order_id=db_order.id,
            from_status=None,
            to_status=OrderStatus.PENDING,
            actor=f"buyer:{buyer.id}",
            note="Заказ создан",
        ))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        await log.log_error("order", f"Ошибка сохранения заказа: {e}", {"buyer_id": buyer.id})
        raise PersistenceError()

    db_order = await load_order(db, db_order.id)
    await log.log_info("order", "Заказ создан", {
        "id": db_order.id,
        "total_price": db_order.total_price,
        "payment_method": db_order.payment_method,
    })

    await notify_order_placed(db_order, buyer, request)
    return db_order


async def notify_order_placed(order: OrderModel, buyer, request: Request):
    """Подтверждение покупателю и уведомление каждому продавцу о его позициях."""
    notifier = request.app.state.notifier
    log = request.app.state.log
    try:
        await notifier.order_placed(OrderNotice.from_order(order), Recipient(buyer.name, buyer.email, buyer.phone))

        by_seller = defaultdict(list)
        for item in order.items:
            by_seller[item.seller_id].append(item)
        sellers = await read_users_by_ids(by_seller.keys(), request)
        for seller_id, seller_items in by_seller.items():
            seller = sellers.get(seller_id)
            if seller is None:
                continue
            await notifier.seller_new_order(
                OrderNotice.from_order(order, seller_items),
                Recipient(seller.name, seller.email, seller.phone),
            )
    except Exception as e:
        await log.log_error("notify", f"Ошибка рассылки о новом заказе: {e!r}", {"order_id": order.id})


async def read_order_service(id: int, user, request: Request) -> OrderModel:
    """
    Чтение заказа по ID (покупатель, продавец позиции или администратор).
    """
    db = request.state.db
    log = request.app.state.log

    db_order = await load_order(db, id)
    if db_order is None:
        await log.log_error("order", "Заказ не найден", {"id": id})
        raise NotFoundError("Заказ не найден")

    if user is not None and not can_view_order(db_order, user):
        await log.log_warning("order", "Попытка просмотра чужого заказа", {"id": id, "user_id": user.id})
        raise AuthorizationError("Нет доступа к заказу")

    await log.log_info("order", "Заказ загружен", {"id": id})
    return db_order


async def read_my_orders_service(buyer, request: Request, skip: int = 0, limit: int = 100) -> list[OrderModel]:
    """
    Заказы текущего покупателя, новые сверху.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.user_id == buyer.id)
        .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        .offset(skip).limit(limit)
    )
    orders = result.scalars().all()

    await log.log_info("order", f"{len(orders)} заказов покупателя загружено", {"user_id": buyer.id})
    return orders


async def _seller_orders(db, seller_id: int) -> list[OrderModel]:
    seller_order_ids = select(OrderItemModel.order_id).where(OrderItemModel.seller_id == seller_id)
    result = await db.execute(
        select(OrderModel)
        .where(OrderModel.id.in_(seller_order_ids))
        .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
    )
    return result.scalars().all()


def seller_subtotal(order: OrderModel, seller_id: int) -> Decimal:
    return to_money(sum((i.subtotal for i in order.items if i.seller_id == seller_id), Decimal("0")))


async def read_seller_orders_service(seller, request: Request) -> list[dict]:
    """
    Заказы, содержащие товары продавца.
    В каждом заказе остаются только позиции продавца и его сумма seller_total.
    """
    db = request.state.db
    log = request.app.state.log

    orders = await _seller_orders(db, seller.id)
    filtered = []
    for order in orders:
        data = {c.key: getattr(order, c.key) for c in OrderModel.__table__.columns}
        data["items"] = [i for i in order.items if i.seller_id == seller.id]
        data["seller_total"] = seller_subtotal(order, seller.id)
        filtered.append(data)

    await log.log_info("order", f"{len(filtered)} заказов продавца загружено", {"seller_id": seller.id})
    return filtered


async def read_seller_stats_service(seller, request: Request) -> dict:
    """
    Статистика продавца.

    total_earnings: доля продавца после комиссии по оплаченным заказам
    (ставка берётся из записи комиссии, т.е. действовавшая при оплате).
    """
    db = request.state.db
    log = request.app.state.log

    orders = await _seller_orders(db, seller.id)
    rates = {}
    if orders:
        result = await db.execute(
            select(CommissionModel.order_id, CommissionModel.rate)
            .where(CommissionModel.order_id.in_([o.id for o in orders]))
        )
        rates = dict(result.all())

    total_earnings = Decimal("0.00")
    for order in orders:
        if order.status in EARNING_STATUSES and order.id in rates:
            share = seller_subtotal(order, seller.id)
            total_earnings += compute_commission(share, rates[order.id]).seller_payout

    stats = {
        "total_earnings": to_money(total_earnings),
        "total_orders": len(orders),
        "pending_orders": sum(1 for o in orders if o.status in AWAITING_SHIPMENT),
    }
    await log.log_info("order", "Статистика продавца", {"seller_id": seller.id, **stats})
    return stats


async def read_order_history_service(id: int, user, request: Request) -> list[OrderStatusEventModel]:
    """
    Журнал смены статусов заказа.
    """
    db = request.state.db

    await read_order_service(id, user, request)
    result = await db.execute(
        select(OrderStatusEventModel)
        .where(OrderStatusEventModel.order_id == id)
        .order_by(OrderStatusEventModel.id)
    )
    return result.scalars().all()


async def read_orders_admin_service(
    request: Request,
    page: int = 1,
    limit: int = 20,
    status: OrderStatus | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """
    Список всех заказов для администратора с фильтрами и пагинацией.
    """
    db = request.state.db
    log = request.app.state.log

    filters = []
    if status is not None:
        filters.append(OrderModel.status == status)
    if start_date is not None:
        filters.append(OrderModel.created_at >= start_date)
    if end_date is not None:
        filters.append(OrderModel.created_at <= end_date)

    total = (await db.execute(select(func.count(OrderModel.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(OrderModel)
        .where(*filters)
        .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = result.scalars().all()

    await log.log_info("admin", f"{len(orders)} заказов загружено", {"page": page, "total": total})
    return {
        "orders": orders,
        "total_orders": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "current_page": page,
    }


async def read_order_stats_service(request: Request) -> dict:
    """
    Количество заказов по статусам.
    """
    db = request.state.db

    result = await db.execute(select(OrderModel.status, func.count(OrderModel.id)).group_by(OrderModel.status))
    counts = {status.value: 0 for status in OrderStatus}
    for status, count in result.all():
        counts[OrderStatus.parse(status).value] = count
    counts["TOTAL"] = sum(counts.values())
    return counts
