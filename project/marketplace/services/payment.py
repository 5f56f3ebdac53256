# marketplace/services/payment.py

"""
Оплата заказов: запуск платежа, уведомления Paynow, опрос шлюза,
квитанции и ручное подтверждение оплаты администратором.

Все смены статуса делегируются transition_order().
"""

import time

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from marketplace.config import settings
from marketplace.models.order import Order as OrderModel, OrderStatus, PaymentMethod
from marketplace.schemas.payment import PlatformPaymentDetails
from marketplace.services.commission import to_money
from marketplace.services.order import load_order, can_manage_order
from marketplace.services.paynow import status_kind
from marketplace.services.transitions import transition_order
from marketplace.utils.errors import (
    AuthorizationError,
    InvalidTransitionError,
    InvalidWebhookPayloadError,
    InvalidWebhookSignatureError,
    NotFoundError,
    OutOfStockError,
    PaymentGatewayError,
    PersistenceError,
)


def build_payment_details() -> PlatformPaymentDetails:
    """Реквизиты платформы для EcoCash и банковского перевода."""
    return PlatformPaymentDetails(
        business_name=settings.PLATFORM_BUSINESS_NAME,
        ecocash={"name": settings.PLATFORM_ECOCASH_NAME, "number": settings.PLATFORM_ECOCASH_NUMBER},
        bank={
            "bank_name": settings.PLATFORM_BANK_NAME,
            "account_name": settings.PLATFORM_BANK_ACCOUNT_NAME,
            "account_number": settings.PLATFORM_BANK_ACCOUNT_NUMBER,
        },
        contact={"whatsapp": settings.PLATFORM_CONTACT_WHATSAPP, "email": settings.PLATFORM_CONTACT_EMAIL},
    )


def success_url(order_id: int) -> str:
    return f"{settings.FRONTEND_URL}/order/success?orderId={order_id}"


async def _get_order(order_id: int, request: Request) -> OrderModel:
    order = await load_order(request.state.db, order_id)
    if order is None:
        await request.app.state.log.log_error("payment", "Заказ не найден", {"id": order_id})
        raise NotFoundError("Заказ не найден")
    return order


async def _save_payment_fields(order: OrderModel, request: Request, **fields):
    """Сохраняет поля оплаты без смены статуса."""
    db = request.state.db
    try:
        for key, value in fields.items():
            setattr(order, key, value)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        await request.app.state.log.log_error("payment", f"Ошибка сохранения данных оплаты: {e}", {"id": order.id})
        raise PersistenceError()


# ────────────── Запуск оплаты ──────────────
async def initiate_payment_service(order: OrderModel, buyer, request: Request) -> dict:
    """
    Определяет, куда отправить покупателя после создания заказа.

    - Paynow: ссылка на страницу оплаты шлюза. Если шлюз не настроен
      (режим разработки), заказ сразу отмечается оплаченным и
      возвращается ссылка на страницу успеха.
    - EcoCash / банковский перевод: реквизиты платформы, оплату подтвердит
      администратор по квитанции.
    - Наложенный платёж: ссылка на страницу успеха.
    """
    log = request.app.state.log
    paynow = request.app.state.paynow

    if order.status != OrderStatus.PENDING:
        raise InvalidTransitionError(f"Заказ уже в статусе {order.status.value}, оплата не требуется")

    if order.payment_method == PaymentMethod.PAYNOW:
        if paynow.configured:
            init = await paynow.initiate(
                reference=str(order.id),
                amount=order.total_price,
                additional_info=f"WyZar Order #{order.id}",
                auth_email=buyer.email or "",
            )
            await _save_payment_fields(order, request, poll_url=init.poll_url, payment_status="Sent")
            await log.log_info("paynow", "Платёж Paynow создан", {"order_id": order.id})
            return {
                "order": order,
                "redirect_url": init.browser_url,
                "message": "Перейдите на страницу Paynow для оплаты",
            }

        result = await transition_order(
            order.id,
            OrderStatus.PAID,
            "system",
            request,
            note="Режим разработки: оплата пропущена",
            payment={
                "payment_reference": f"DEV_{int(time.time() * 1000)}",
                "payment_status": "Development Mode - Auto Approved",
            },
        )
        await log.log_warning("paynow", "Paynow не настроен, заказ подтверждён автоматически", {"order_id": order.id})
        return {
            "order": result.order,
            "redirect_url": success_url(order.id),
            "message": "Заказ создан (режим разработки, оплата пропущена)",
        }

    if order.payment_method.is_manual:
        return {
            "order": order,
            "redirect_url": None,
            "payment_details": build_payment_details(),
            "message": "Оплатите заказ по реквизитам и загрузите квитанцию",
        }

    return {
        "order": order,
        "redirect_url": success_url(order.id),
        "message": "Заказ оформлен, оплата при получении",
    }


async def pay_order_service(order_id: int, buyer, request: Request) -> dict:
    """Повторный запуск оплаты покупателем (например, после ошибки шлюза)."""
    order = await _get_order(order_id, request)
    if order.user_id != buyer.id:
        raise AuthorizationError("Можно оплатить только свой заказ")
    return await initiate_payment_service(order, buyer, request)


# ────────────── Уведомление Paynow ──────────────
async def apply_gateway_status(order: OrderModel, payload: dict, source: str, request: Request) -> dict:
    """
    Применяет статус, сообщённый Paynow (уведомление или опрос).
    Повторные и запоздавшие сообщения для обработанного заказа ничего не меняют.
    """
    log = request.app.state.log
    gateway_status = payload.get("status", "")

    if order.status != OrderStatus.PENDING:
        await log.log_info("paynow", f"Заказ уже обработан: {order.status.value}", {"order_id": order.id, "source": source})
        return {"order_id": order.id, "status": order.status, "changed": False,
                "message": "Заказ уже обработан", "gateway_status": gateway_status}

    order_id = order.id
    kind = status_kind(gateway_status)
    payment = {"payment_status": gateway_status}
    if payload.get("paynowreference"):
        payment["payment_reference"] = payload["paynowreference"]

    if kind == "paid":
        amount = payload.get("amount")
        if amount:
            try:
                reported = to_money(amount)
            except ArithmeticError:
                raise InvalidWebhookPayloadError("Некорректная сумма в уведомлении")
            if reported != order.total_price:
                await log.log_error("paynow", "Сумма платежа не совпадает с заказом", {
                    "order_id": order.id, "reported": reported, "expected": order.total_price,
                })
                raise InvalidWebhookPayloadError("Сумма платежа не совпадает с суммой заказа")
        try:
            result = await transition_order(order.id, OrderStatus.PAID, source, request, note="Оплата через Paynow", payment=payment)
        except OutOfStockError as e:
            # Деньги уже получены: сохраняем данные платежа, заказ остаётся PENDING до решения администратора.
            # После отката объект устарел, перечитываем его.
            order = await _get_order(order_id, request)
            await _save_payment_fields(order, request, payment_status=f"{gateway_status} (out of stock)",
                                       payment_reference=payment.get("payment_reference"))
            await log.log_error("paynow", f"Оплата получена, но товара нет на складе: {e.detail}", {"order_id": order.id})
            return {"order_id": order.id, "status": order.status, "changed": False,
                    "message": "Оплата получена, но товара нет на складе, требуется возврат",
                    "gateway_status": gateway_status}
    elif kind == "failed":
        result = await transition_order(order.id, OrderStatus.CANCELLED, source, request, note=f"Paynow: {gateway_status}", payment=payment)
    else:
        await _save_payment_fields(order, request, payment_status=gateway_status)
        await log.log_info("paynow", f"Промежуточный статус Paynow: {gateway_status}", {"order_id": order.id})
        return {"order_id": order.id, "status": order.status, "changed": False,
                "message": "Статус платежа сохранён", "gateway_status": gateway_status}

    return {"order_id": order.id, "status": result.order.status, "changed": result.changed,
            "message": "Уведомление обработано", "gateway_status": gateway_status}


async def handle_callback_service(payload: dict, signature: str | None, request: Request) -> dict:
    """
    Обработка уведомления Paynow (resulturl).

    Подпись проверяется до любых изменений; при неверной подписи
    состояние заказа не трогается.
    """
    log = request.app.state.log
    paynow = request.app.state.paynow

    if not paynow.verify_signature(payload, signature):
        await log.log_error("paynow", "Неверная подпись уведомления", {"reference": payload.get("reference")})
        raise InvalidWebhookSignatureError()

    await log.log_info("paynow", "Уведомление Paynow получено", {
        "reference": payload.get("reference"), "status": payload.get("status"),
    })

    try:
        order_id = int(payload.get("reference", ""))
    except ValueError:
        raise InvalidWebhookPayloadError("Некорректный reference в уведомлении")

    order = await _get_order(order_id, request)
    return await apply_gateway_status(order, payload, "paynow", request)


async def poll_payment_service(order_id: int, user, request: Request) -> dict:
    """
    Проверка оплаты опросом Paynow, если уведомление не пришло.
    """
    log = request.app.state.log
    paynow = request.app.state.paynow

    order = await _get_order(order_id, request)
    if not can_manage_order(order, user):
        raise AuthorizationError("Проверять оплату может продавец заказа или администратор")
    if order.status != OrderStatus.PENDING:
        raise InvalidTransitionError(f"Заказ уже в статусе {order.status.value}, проверка не нужна")
    if not paynow.configured or not order.poll_url:
        await log.log_warning("paynow", "Опрос Paynow невозможен", {"order_id": order_id})
        raise PaymentGatewayError("Автоматическая проверка недоступна, подтвердите оплату вручную")

    payload = await paynow.poll(order.poll_url)
    if payload.get("reference") and payload["reference"] != str(order.id):
        raise InvalidWebhookPayloadError("Ответ Paynow относится к другому заказу")
    return await apply_gateway_status(order, payload, "paynow-poll", request)


# ────────────── Ручная оплата ──────────────
async def submit_payment_proof_service(order_id: int, payment_proof: str, buyer, request: Request) -> OrderModel:
    """
    Покупатель прикладывает квитанцию (ссылку на загруженный файл).
    """
    log = request.app.state.log

    order = await _get_order(order_id, request)
    if order.user_id != buyer.id:
        raise AuthorizationError("Квитанцию можно приложить только к своему заказу")
    if not order.payment_method.is_manual:
        raise InvalidTransitionError("Квитанция нужна только для EcoCash и банковского перевода")
    if order.status != OrderStatus.PENDING:
        raise InvalidTransitionError(f"Заказ уже в статусе {order.status.value}")

    await _save_payment_fields(order, request, payment_proof=payment_proof)
    await log.log_info("payment", "Квитанция приложена", {"order_id": order_id})
    return order


async def verify_manual_payment_service(order_id: int, admin, request: Request) -> dict:
    """
    Администратор подтверждает оплату EcoCash / банковским переводом.

    Требования: заказ в статусе PENDING, способ оплаты ручной и (если
    MANUAL_PAYMENT_REQUIRE_PROOF) приложена квитанция.
    """
    log = request.app.state.log

    if not admin.is_admin:
        raise AuthorizationError("Подтверждать оплату может только администратор")

    order = await _get_order(order_id, request)
    if not order.payment_method.is_manual:
        raise InvalidTransitionError("Ручное подтверждение только для EcoCash и банковского перевода")
    if order.status != OrderStatus.PENDING:
        raise InvalidTransitionError(f"Заказ уже в статусе {order.status.value}, подтверждение невозможно")
    if settings.MANUAL_PAYMENT_REQUIRE_PROOF and not order.payment_proof:
        await log.log_warning("payment", "Попытка подтвердить оплату без квитанции", {"order_id": order_id, "admin_id": admin.id})
        raise InvalidTransitionError("К заказу не приложена квитанция об оплате")

    result = await transition_order(
        order_id,
        OrderStatus.PAID,
        f"admin:{admin.id}",
        request,
        note="Оплата подтверждена вручную",
        payment={
            "payment_reference": f"MANUAL_{int(time.time() * 1000)}",
            "payment_status": "Manually confirmed by admin",
        },
    )
    await log.log_info("payment", "Оплата подтверждена вручную", {"order_id": order_id, "admin_id": admin.id, "changed": result.changed})
    return {"order_id": order_id, "status": result.order.status, "changed": result.changed,
            "message": "Оплата подтверждена, заказ отмечен оплаченным"}
