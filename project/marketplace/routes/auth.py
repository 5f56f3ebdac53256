# marketplace/routes/auth.py

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt import ExpiredSignatureError, InvalidTokenError

from marketplace.schemas.user import UserResponse
from marketplace.services.profile import sync_user_service
from marketplace.utils.errors import AuthorizationError
from marketplace.utils.security import decode_access_token

router = APIRouter()

# ────────────── JWT провайдера авторизации ──────────────
# Токен выдаёт внешний провайдер (Clerk / Better Auth), tokenUrl только для OpenAPI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)):
    """
    Проверяет JWT токен и возвращает пользователя из БД.

    **Статусы:**
    - 200 OK – токен действителен
    - 401 Unauthorized – токен истёк, неверный или отсутствует sub

    Пользователь создаётся/обновляется по claims токена (sub, email, name, phone, role).
    """
    log = request.app.state.log
    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        await log.log_warning("auth", "Токен истёк")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError:
        await log.log_warning("auth", "Неверный токен")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token invalid")

    if not payload.get("sub"):
        await log.log_error("auth", "Токен не содержит sub")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    return await sync_user_service(payload, request)


async def require_admin(request: Request, current_user=Depends(get_current_user)):
    """Доступ только для администратора."""
    if not current_user.is_admin:
        await request.app.state.log.log_warning("auth", "Отказано: нужна роль администратора", {"user_id": current_user.id})
        raise AuthorizationError("Доступ только для администратора")
    return current_user


async def require_seller(request: Request, current_user=Depends(get_current_user)):
    """Доступ для продавцов (и администратора)."""
    if not (current_user.is_seller or current_user.is_admin):
        await request.app.state.log.log_warning("auth", "Отказано: нужна роль продавца", {"user_id": current_user.id})
        raise AuthorizationError("Доступ только для продавцов")
    return current_user


# ────────────── ME ──────────────
@router.get(
    "/me",
    response_model=UserResponse,
    summary="Текущий пользователь",
    responses={
        200: {"description": "Данные пользователя из токена"},
        401: {"description": "Токен невалиден"},
    },
)
async def read_me(current_user=Depends(get_current_user)):
    return current_user
