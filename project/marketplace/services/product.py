# marketplace/services/product.py

from sqlalchemy.future import select
from fastapi import Request

from marketplace.models.product import Product as ProductModel
from marketplace.schemas.product import ProductCreate, ProductUpdate
from marketplace.utils.errors import NotFoundError, AuthorizationError


async def read_products_service(request: Request, skip: int = 0, limit: int = 100, seller_id: int | None = None) -> list[ProductModel]:
    """
    Получение списка товаров (опционально только одного продавца).
    """
    db = request.state.db
    log = request.app.state.log

    query = select(ProductModel).order_by(ProductModel.id)
    if seller_id is not None:
        query = query.where(ProductModel.seller_id == seller_id)
    result = await db.execute(query.offset(skip).limit(limit))
    products = result.scalars().all()

    await log.log_info("product", f"{len(products)} товаров загружено")
    return products


async def create_product_service(product: ProductCreate, seller, request: Request) -> ProductModel:
    """
    Создание товара продавцом.
    """
    db = request.state.db
    log = request.app.state.log

    db_product = ProductModel(seller_id=seller.id, **product.model_dump())
    db.add(db_product)
    await db.commit()
    await db.refresh(db_product)

    await log.log_info("product", "Товар создан", {"id": db_product.id, "seller_id": seller.id})
    return db_product


async def read_product_service(id: int, request: Request) -> ProductModel:
    """
    Чтение товара по ID.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(ProductModel).where(ProductModel.id == id))
    db_product = result.scalar_one_or_none()
    if db_product is None:
        await log.log_error("product", "Товар не найден", {"id": id})
        raise NotFoundError("Товар не найден")

    return db_product


async def update_product_service(id: int, product_update: ProductUpdate, user, request: Request) -> ProductModel:
    """
    Обновление товара. Менять товар может только его продавец или администратор.
    Цены в уже созданных заказах не меняются: там хранится снимок цены.
    """
    db = request.state.db
    log = request.app.state.log

    db_product = await read_product_service(id, request)
    if db_product.seller_id != user.id and not user.is_admin:
        await log.log_warning("product", "Попытка изменить чужой товар", {"id": id, "user_id": user.id})
        raise AuthorizationError("Можно изменять только свои товары")

    for key, value in product_update.model_dump(exclude_unset=True).items():
        setattr(db_product, key, value)

    await db.commit()
    await db.refresh(db_product)
    await log.log_info("product", "Товар обновлён", {"id": id})
    return db_product
