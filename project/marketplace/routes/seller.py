# marketplace/routes/seller.py

from fastapi import APIRouter, Depends, Request, status
from typing import List
from marketplace.schemas.verification import Document, DocumentCreate
from marketplace.services.verification import read_my_documents_service, submit_document_service
from marketplace.routes.auth import get_current_user

router = APIRouter()


# ────────────── Документы продавца ──────────────
@router.post(
    "/documents",
    response_model=Document,
    status_code=status.HTTP_201_CREATED,
    summary="Загрузить документ для проверки продавца",
    responses={
        201: {"description": "Документ отправлен на проверку"},
        401: {"description": "Некорректный пользователь или токен"},
        403: {"description": "Пользователь не подавал заявку продавца"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def submit_document(
    request: Request,
    document: DocumentCreate,
    current_user=Depends(get_current_user),
):
    try:
        return await submit_document_service(document, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("seller", f"Ошибка при загрузке документа: {str(e)}")
        raise


@router.get(
    "/documents",
    response_model=List[Document],
    summary="Мои документы и их статус",
)
async def read_my_documents(request: Request, current_user=Depends(get_current_user)):
    return await read_my_documents_service(current_user, request)
