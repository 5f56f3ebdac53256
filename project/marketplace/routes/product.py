# marketplace/routes/product.py

from fastapi import APIRouter, Depends, Request, status
from typing import List, Optional
from marketplace.schemas.product import Product, ProductCreate, ProductUpdate
from marketplace.services.product import (
    create_product_service,
    read_products_service,
    read_product_service,
    update_product_service,
)
from marketplace.routes.auth import get_current_user, require_seller

router = APIRouter()

# ────────────── CREATE ──────────────
@router.post(
    "/",
    response_model=Product,
    status_code=status.HTTP_201_CREATED,
    summary="Создать товар",
    responses={
        201: {"description": "Товар успешно создан"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Пользователь не является продавцом"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def create_product(
    request: Request,
    product: ProductCreate,
    seller=Depends(require_seller),
):
    try:
        return await create_product_service(product, seller, request)
    except Exception as e:
        await request.app.state.log.log_error("product", f"Ошибка при создании товара: {str(e)}")
        raise


# ────────────── READ ALL ──────────────
@router.get(
    "/",
    response_model=List[Product],
    summary="Получить список товаров",
    responses={
        200: {"description": "Список товаров успешно получен"},
    },
)
async def read_products(
    request: Request,
    skip: int = 0,
    limit: int = 100,
    seller_id: Optional[int] = None,
):
    return await read_products_service(request, skip, limit, seller_id)


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=Product,
    summary="Получить товар по ID",
    responses={
        200: {"description": "Товар найден и возвращён"},
        404: {"description": "Товар не найден"},
    },
)
async def read_product(id: int, request: Request):
    return await read_product_service(id, request)


# ────────────── UPDATE ──────────────
@router.put(
    "/{id}",
    response_model=Product,
    summary="Обновить товар",
    responses={
        200: {"description": "Товар успешно обновлён"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Товар принадлежит другому продавцу"},
        404: {"description": "Товар не найден"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def update_product(
    id: int,
    product_update: ProductUpdate,
    request: Request,
    current_user=Depends(get_current_user),
):
    try:
        return await update_product_service(id, product_update, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("product", f"Ошибка при обновлении товара: {str(e)}", {"id": id})
        raise
