# marketplace/utils/security.py

"""
Модуль для работы с JWT токенами провайдера авторизации.
Токены выпускает внешний провайдер (Clerk / Better Auth) и подписывает общим
секретом; сервис только проверяет подпись и читает claims.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jwt import encode, decode

from marketplace.config import settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Создаёт JWT токен (используется в тестах и для локальной разработки).
    Вход: dict (например {"sub": "user_123", "email": "...", "role": "ADMIN"})
    Выход: JWT строка
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return encode(to_encode, settings.AUTH_SECRET_KEY, algorithm=settings.AUTH_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Проверяет подпись и срок действия токена.

    :raises jwt.ExpiredSignatureError: токен истёк
    :raises jwt.InvalidTokenError: токен повреждён или подписан другим ключом
    :return: claims токена
    """
    return decode(token, settings.AUTH_SECRET_KEY, algorithms=[settings.AUTH_ALGORITHM])
