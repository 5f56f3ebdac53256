# marketplace/utils/errors.py

"""
Доменные ошибки сервиса заказов.

Все ошибки наследуют HTTPException, поэтому их можно поднимать прямо из
сервисного слоя: FastAPI сам превратит их в ответ с нужным кодом.
"""

from fastapi import HTTPException, status


class MarketplaceError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Ошибка запроса"

    def __init__(self, detail: str | None = None, headers: dict | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail, headers=headers)


class InvalidTransitionError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Недопустимая смена статуса заказа"


class InvalidWebhookSignatureError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Неверная подпись уведомления платёжного шлюза"


class InvalidWebhookPayloadError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Некорректные данные уведомления платёжного шлюза"


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Объект не найден"


class AuthorizationError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Доступ запрещён"


class OutOfStockError(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Недостаточно товара на складе"


class PaymentGatewayError(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Ошибка платёжного шлюза"


class PersistenceError(MarketplaceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Внутренняя ошибка сервера"
