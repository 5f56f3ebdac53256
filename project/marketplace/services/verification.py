# marketplace/services/verification.py

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from fastapi import Request

from marketplace.models.user import User as UserModel
from marketplace.models.verification import (
    VerificationDocument as DocumentModel,
    DocumentStatus,
)
from marketplace.schemas.verification import DocumentCreate, DocumentReview
from marketplace.utils.database import utcnow
from marketplace.utils.errors import AuthorizationError, InvalidTransitionError, MarketplaceError, NotFoundError, PersistenceError


async def submit_document_service(document: DocumentCreate, user, request: Request) -> DocumentModel:
    """
    Продавец загружает документ для проверки (файл уже загружен, передаётся путь).
    """
    db = request.state.db
    log = request.app.state.log

    if not user.is_seller:
        await log.log_warning("seller", "Документ от пользователя без заявки продавца", {"user_id": user.id})
        raise AuthorizationError("Документы загружают только продавцы")

    db_document = DocumentModel(user_id=user.id, status=DocumentStatus.PENDING, **document.model_dump())
    db.add(db_document)
    await db.commit()
    await db.refresh(db_document)

    await log.log_info("seller", "Документ загружен", {"id": db_document.id, "user_id": user.id, "type": document.document_type})
    return db_document


async def read_my_documents_service(user, request: Request) -> list[DocumentModel]:
    db = request.state.db
    result = await db.execute(
        select(DocumentModel).where(DocumentModel.user_id == user.id).order_by(DocumentModel.id)
    )
    return result.scalars().all()


async def read_documents_service(request: Request, status: DocumentStatus | None = None) -> list[DocumentModel]:
    """
    Документы всех продавцов для администратора (фильтр по статусу).
    """
    db = request.state.db
    log = request.app.state.log

    query = select(DocumentModel).order_by(DocumentModel.uploaded_at, DocumentModel.id)
    if status is not None:
        query = query.where(DocumentModel.status == status)
    result = await db.execute(query)
    documents = result.scalars().all()

    await log.log_info("admin", f"{len(documents)} документов загружено", {"status": status})
    return documents


async def review_document_service(id: int, review: DocumentReview, admin, request: Request) -> DocumentModel:
    """
    Одобрение или отклонение документа.

    Проверять можно только документы в статусе PENDING, при отказе нужна причина.
    Продавец становится проверенным, когда одобрены все его документы;
    отказ по любому документу снимает отметку.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(DocumentModel).where(DocumentModel.id == id))
    db_document = result.scalar_one_or_none()
    if db_document is None:
        await log.log_error("admin", "Документ не найден", {"id": id})
        raise NotFoundError("Документ не найден")

    if db_document.status != DocumentStatus.PENDING:
        raise InvalidTransitionError(f"Документ уже проверен: {db_document.status.value}")
    if not review.approve and not (review.reason or "").strip():
        raise MarketplaceError("Укажите причину отказа")

    try:
        db_document.status = DocumentStatus.APPROVED if review.approve else DocumentStatus.REJECTED
        db_document.rejection_reason = None if review.approve else review.reason.strip()
        db_document.reviewed_at = utcnow()
        db_document.reviewed_by_id = admin.id

        seller = (await db.execute(select(UserModel).where(UserModel.id == db_document.user_id))).scalar_one()
        if review.approve:
            statuses = (await db.execute(
                select(DocumentModel.status).where(DocumentModel.user_id == seller.id, DocumentModel.id != id)
            )).scalars().all()
            seller.is_verified = all(s == DocumentStatus.APPROVED for s in statuses)
        else:
            seller.is_verified = False

        await db.commit()
        await db.refresh(db_document)
    except SQLAlchemyError as e:
        await db.rollback()
        await log.log_error("admin", f"Ошибка сохранения проверки документа: {e}", {"id": id})
        raise PersistenceError()

    await log.log_info("admin", "Документ проверен", {
        "id": id,
        "status": db_document.status,
        "seller_id": seller.id,
        "seller_verified": seller.is_verified,
        "admin_id": admin.id,
    })
    return db_document
