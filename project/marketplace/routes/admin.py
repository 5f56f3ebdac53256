# marketplace/routes/admin.py

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request

from marketplace.models.order import OrderStatus
from marketplace.models.verification import DocumentStatus
from marketplace.schemas.commission import CommissionSummary
from marketplace.schemas.order import Order, OrderPage, OrderStatusUpdate
from marketplace.schemas.verification import Document, DocumentReview
from marketplace.services.commission import read_commissions_service
from marketplace.services.order import read_order_service, read_orders_admin_service, read_order_stats_service
from marketplace.services.transitions import update_order_status_service
from marketplace.services.verification import read_documents_service, review_document_service
from marketplace.routes.auth import require_admin

# Все маршруты раздела только для администратора
router = APIRouter(dependencies=[Depends(require_admin)])


# ────────────── Заказы ──────────────
@router.get(
    "/orders",
    response_model=OrderPage,
    summary="Все заказы (фильтры и пагинация)",
    responses={
        200: {"description": "Страница заказов"},
        403: {"description": "Доступ только для администратора"},
    },
)
async def read_orders(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    try:
        return await read_orders_admin_service(request, page, limit, status, start_date, end_date)
    except Exception as e:
        await request.app.state.log.log_error("admin", f"Ошибка при получении заказов: {str(e)}")
        raise


@router.get(
    "/orders/stats",
    response_model=Dict[str, int],
    summary="Количество заказов по статусам",
)
async def read_order_stats(request: Request):
    return await read_order_stats_service(request)


@router.get(
    "/orders/{id}",
    response_model=Order,
    summary="Заказ по ID",
    responses={404: {"description": "Заказ не найден"}},
)
async def read_order(id: int, request: Request):
    # Проверка прав уже выполнена зависимостью роутера
    return await read_order_service(id, None, request)


@router.put(
    "/orders/{id}/status",
    response_model=Order,
    summary="Изменить статус заказа",
    responses={
        200: {"description": "Статус изменён (или уже был таким)"},
        400: {"description": "Недопустимая смена статуса или нет товара на складе"},
        404: {"description": "Заказ не найден"},
    },
)
async def update_order_status(
    id: int,
    status_update: OrderStatusUpdate,
    request: Request,
    admin=Depends(require_admin),
):
    try:
        return await update_order_status_service(id, status_update, admin, request)
    except Exception as e:
        await request.app.state.log.log_error("admin", f"Ошибка при смене статуса заказа: {str(e)}", {"id": id})
        raise


# ────────────── Комиссии ──────────────
@router.get(
    "/commissions",
    response_model=CommissionSummary,
    summary="Комиссии платформы по оплаченным заказам",
)
async def read_commissions(request: Request, skip: int = 0, limit: int = 100):
    records, total_fee, total_payout = await read_commissions_service(request, skip, limit)
    return CommissionSummary(records=records, total_platform_fee=total_fee, total_seller_payout=total_payout)


# ────────────── Документы продавцов ──────────────
@router.get(
    "/documents",
    response_model=List[Document],
    summary="Документы продавцов",
)
async def read_documents(request: Request, status: Optional[DocumentStatus] = None):
    return await read_documents_service(request, status)


@router.put(
    "/documents/{id}/review",
    response_model=Document,
    summary="Одобрить или отклонить документ",
    responses={
        200: {"description": "Решение сохранено"},
        400: {"description": "Документ уже проверен или нет причины отказа"},
        404: {"description": "Документ не найден"},
    },
)
async def review_document(
    id: int,
    review: DocumentReview,
    request: Request,
    admin=Depends(require_admin),
):
    try:
        return await review_document_service(id, review, admin, request)
    except Exception as e:
        await request.app.state.log.log_error("admin", f"Ошибка при проверке документа: {str(e)}", {"id": id})
        raise
