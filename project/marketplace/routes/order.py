# marketplace/routes/order.py

from fastapi import APIRouter, Depends, Request, status
from typing import List
from marketplace.schemas.order import (
    Order,
    OrderCreate,
    OrderCreateResponse,
    OrderStatusEvent,
    OrderStatusUpdate,
    PaymentProofSubmit,
    SellerOrder,
    SellerStats,
)
from marketplace.schemas.payment import PaymentResult
from marketplace.services.order import (
    create_order_service,
    read_my_orders_service,
    read_order_history_service,
    read_order_service,
    read_seller_orders_service,
    read_seller_stats_service,
)
from marketplace.services.payment import (
    initiate_payment_service,
    pay_order_service,
    poll_payment_service,
    submit_payment_proof_service,
    verify_manual_payment_service,
)
from marketplace.services.transitions import update_order_status_service
from marketplace.routes.auth import get_current_user, require_admin, require_seller
from marketplace.utils.errors import PaymentGatewayError

router = APIRouter()


def creation_response(order, payment: dict) -> OrderCreateResponse:
    order = payment.get("order", order)
    return OrderCreateResponse(
        id=order.id,
        status=order.status,
        total_price=order.total_price,
        payment_method=order.payment_method,
        redirect_url=payment.get("redirect_url"),
        payment_details=payment.get("payment_details"),
        message=payment["message"],
    )


# ────────────── CREATE ──────────────
@router.post(
    "/",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Создать заказ",
    response_description="Возвращает заказ и куда направить покупателя для оплаты",
    responses={
        201: {"description": "Заказ успешно создан"},
        400: {"description": "Недостаточно товара на складе"},
        401: {"description": "Некорректный пользователь или токен"},
        404: {"description": "Товар не найден"},
        422: {"description": "Неверные данные запроса"},
        500: {"description": "Внутренняя ошибка сервера"},
    },
)
async def create_order(
    request: Request,
    order: OrderCreate,
    buyer=Depends(get_current_user),
):
    log = request.app.state.log
    try:
        db_order = await create_order_service(order, buyer, request)
    except Exception as e:
        await log.log_error("order", f"Ошибка при создании заказа: {str(e)}")
        raise

    try:
        payment = await initiate_payment_service(db_order, buyer, request)
    except PaymentGatewayError as e:
        # Заказ сохранён, оплату можно запустить повторно через /order/{id}/pay
        await log.log_error("paynow", f"Не удалось создать платёж: {e.detail}", {"order_id": db_order.id})
        payment = {"message": f"Заказ создан, но платёж не запущен: {e.detail}"}

    return creation_response(db_order, payment)


# ────────────── READ: покупатель ──────────────
@router.get(
    "/my",
    response_model=List[Order],
    summary="Мои заказы",
    responses={
        200: {"description": "Список заказов покупателя"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_my_orders(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    buyer=Depends(get_current_user),
):
    try:
        return await read_my_orders_service(buyer, request, skip, limit)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказов покупателя: {str(e)}")
        raise


# ────────────── READ: продавец ──────────────
@router.get(
    "/seller",
    response_model=List[SellerOrder],
    summary="Заказы с товарами продавца",
    responses={
        200: {"description": "Заказы, отфильтрованные по позициям продавца"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Пользователь не является продавцом"},
    },
)
async def read_seller_orders(request: Request, seller=Depends(require_seller)):
    try:
        return await read_seller_orders_service(seller, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказов продавца: {str(e)}")
        raise


@router.get(
    "/seller/stats",
    response_model=SellerStats,
    summary="Статистика продавца",
    responses={
        200: {"description": "Заработок и количество заказов"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Пользователь не является продавцом"},
    },
)
async def read_seller_stats(request: Request, seller=Depends(require_seller)):
    try:
        return await read_seller_stats_service(seller, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при расчёте статистики продавца: {str(e)}")
        raise


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=Order,
    status_code=status.HTTP_200_OK,
    summary="Получить заказ по ID",
    response_description="Возвращает данные конкретного заказа",
    responses={
        200: {"description": "Заказ найден и возвращён"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Нет доступа к заказу"},
        404: {"description": "Заказ не найден"},
    },
)
async def read_order(
    id: int,
    request: Request,
    current_user=Depends(get_current_user),
):
    try:
        return await read_order_service(id, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказа: {str(e)}", {"id": id})
        raise


@router.get(
    "/{id}/history",
    response_model=List[OrderStatusEvent],
    summary="История статусов заказа",
    responses={
        200: {"description": "Журнал смены статусов"},
        403: {"description": "Нет доступа к заказу"},
        404: {"description": "Заказ не найден"},
    },
)
async def read_order_history(
    id: int,
    request: Request,
    current_user=Depends(get_current_user),
):
    try:
        return await read_order_history_service(id, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении истории заказа: {str(e)}", {"id": id})
        raise


# ────────────── STATUS ──────────────
@router.put(
    "/{id}/status",
    response_model=Order,
    summary="Изменить статус заказа",
    response_description="Заказ с новым статусом",
    responses={
        200: {"description": "Статус изменён (или уже был таким)"},
        400: {"description": "Недопустимая смена статуса или нет товара на складе"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Заказ не содержит товаров продавца"},
        404: {"description": "Заказ не найден"},
        422: {"description": "Неизвестный статус"},
    },
)
async def update_order_status(
    id: int,
    status_update: OrderStatusUpdate,
    request: Request,
    current_user=Depends(get_current_user),
):
    try:
        return await update_order_status_service(id, status_update, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при смене статуса заказа: {str(e)}", {"id": id})
        raise


# ────────────── PAYMENT ──────────────
@router.post(
    "/{id}/pay",
    response_model=OrderCreateResponse,
    summary="Повторно запустить оплату",
    responses={
        200: {"description": "Ссылка на оплату или реквизиты"},
        400: {"description": "Заказ уже не ожидает оплаты"},
        403: {"description": "Чужой заказ"},
        502: {"description": "Ошибка платёжного шлюза"},
    },
)
async def pay_order(
    id: int,
    request: Request,
    buyer=Depends(get_current_user),
):
    try:
        payment = await pay_order_service(id, buyer, request)
        return creation_response(payment["order"], payment)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка при запуске оплаты: {str(e)}", {"id": id})
        raise


@router.post(
    "/{id}/payment-proof",
    response_model=Order,
    summary="Приложить квитанцию об оплате",
    responses={
        200: {"description": "Квитанция сохранена"},
        400: {"description": "Заказ не ожидает ручной оплаты"},
        403: {"description": "Чужой заказ"},
        404: {"description": "Заказ не найден"},
    },
)
async def submit_payment_proof(
    id: int,
    proof: PaymentProofSubmit,
    request: Request,
    buyer=Depends(get_current_user),
):
    try:
        return await submit_payment_proof_service(id, proof.payment_proof, buyer, request)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка при сохранении квитанции: {str(e)}", {"id": id})
        raise


@router.post(
    "/{id}/verify-payment",
    response_model=PaymentResult,
    summary="Подтвердить оплату EcoCash / банковским переводом",
    responses={
        200: {"description": "Оплата подтверждена"},
        400: {"description": "Заказ не ожидает оплаты или нет квитанции"},
        403: {"description": "Доступ только для администратора"},
        404: {"description": "Заказ не найден"},
    },
)
async def verify_payment(
    id: int,
    request: Request,
    admin=Depends(require_admin),
):
    try:
        return await verify_manual_payment_service(id, admin, request)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка при подтверждении оплаты: {str(e)}", {"id": id})
        raise


@router.post(
    "/{id}/poll-payment",
    response_model=PaymentResult,
    summary="Проверить оплату в Paynow",
    responses={
        200: {"description": "Статус платежа получен и применён"},
        400: {"description": "Заказ уже обработан или ответ шлюза некорректен"},
        403: {"description": "Нет доступа к заказу"},
        502: {"description": "Paynow недоступен или не настроен"},
    },
)
async def poll_payment(
    id: int,
    request: Request,
    current_user=Depends(get_current_user),
):
    try:
        return await poll_payment_service(id, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("paynow", f"Ошибка при опросе Paynow: {str(e)}", {"id": id})
        raise
