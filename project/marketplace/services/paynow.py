# marketplace/services/paynow.py

"""
Клиент платёжного шлюза Paynow.

Протокол Paynow: запросы и ответы передаются формами application/x-www-form-urlencoded,
каждое сообщение подписано полем hash:

    hash = SHA512(значения всех полей по порядку, кроме hash + integration key)

в верхнем регистре (hex). Та же подпись проверяется у ответов шлюза,
у уведомлений на resulturl и у ответов на опрос pollurl.
"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

import requests
from fastapi.concurrency import run_in_threadpool

from marketplace.config import settings
from marketplace.utils.errors import PaymentGatewayError, InvalidWebhookSignatureError

# Статусы Paynow, означающие, что деньги получены
PAID_STATUSES = {"paid", "awaiting delivery", "delivered"}
# Статусы, после которых оплата уже не придёт
FAILED_STATUSES = {"cancelled", "failed"}


@dataclass
class InitResponse:
    browser_url: str
    poll_url: str


def status_kind(paynow_status: str) -> str:
    """Явное сопоставление статуса Paynow: 'paid' | 'failed' | 'pending'."""
    value = (paynow_status or "").strip().lower()
    if value in PAID_STATUSES:
        return "paid"
    if value in FAILED_STATUSES:
        return "failed"
    return "pending"


class PaynowGateway:
    """
    Обёртка над HTTP-интерфейсом Paynow.
    Сетевые вызовы выполняются в пуле потоков (requests синхронный).
    """

    def __init__(
        self,
        integration_id: str,
        integration_key: str,
        return_url: str = "",
        result_url: str = "",
        initiate_url: str = "https://www.paynow.co.zw/interface/initiatetransaction",
        auth_email: str = "",
        timeout: float = 30.0,
    ):
        self.integration_id = integration_id
        self.integration_key = integration_key
        self.return_url = return_url
        self.result_url = result_url
        self.initiate_url = initiate_url
        self.auth_email = auth_email
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "PaynowGateway":
        return cls(
            integration_id=settings.PAYNOW_INTEGRATION_ID,
            integration_key=settings.PAYNOW_INTEGRATION_KEY,
            return_url=settings.PAYNOW_RETURN_URL,
            result_url=settings.PAYNOW_RESULT_URL,
            initiate_url=settings.PAYNOW_INITIATE_URL,
            auth_email=settings.PAYNOW_AUTH_EMAIL,
            timeout=settings.PAYNOW_TIMEOUT,
        )

    @property
    def configured(self) -> bool:
        return self.integration_id not in ("", "your_id") and self.integration_key not in ("", "your_key")

    # ==========================================================
    # ПОДПИСЬ
    # ==========================================================
    def generate_hash(self, values: Dict[str, str]) -> str:
        """SHA512 от значений (в порядке следования) + integration key, HEX в верхнем регистре."""
        joined = "".join(str(v) for k, v in values.items() if k.lower() != "hash")
        return hashlib.sha512((joined + self.integration_key).encode("utf-8")).hexdigest().upper()

    def verify_signature(self, payload: Dict[str, str], signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = self.generate_hash(payload)
        return hmac.compare_digest(expected, signature.strip().upper())

    # ==========================================================
    # HTTP
    # ==========================================================
    def _post_sync(self, url: str, data: Dict[str, str]) -> List[Tuple[str, str]]:
        response = requests.post(url, data=data, timeout=self.timeout)
        response.raise_for_status()
        return parse_qsl(response.text, keep_blank_values=True)

    async def _post(self, url: str, data: Dict[str, str]) -> List[Tuple[str, str]]:
        try:
            return await run_in_threadpool(self._post_sync, url, data)
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Paynow недоступен: {e}")

    def _split_signed(self, fields: List[Tuple[str, str]]) -> Tuple[Dict[str, str], Optional[str]]:
        payload = {k: v for k, v in fields if k.lower() != "hash"}
        signature = next((v for k, v in fields if k.lower() == "hash"), None)
        return payload, signature

    # ==========================================================
    # ОПЕРАЦИИ
    # ==========================================================
    async def initiate(self, reference: str, amount: Decimal, additional_info: str, auth_email: str = "") -> InitResponse:
        """
        Регистрирует платёж в Paynow и возвращает ссылку для покупателя.

        :raises PaymentGatewayError: шлюз вернул ошибку или ответ с неверной подписью
        """
        data = {
            "id": self.integration_id,
            "reference": reference,
            "amount": f"{amount:.2f}",
            "additionalinfo": additional_info,
            "returnurl": self.return_url,
            "resulturl": self.result_url,
            "authemail": auth_email or self.auth_email,
            "status": "Message",
        }
        data["hash"] = self.generate_hash(data)

        fields = await self._post(self.initiate_url, data)
        payload, signature = self._split_signed(fields)

        if payload.get("status", "").lower() != "ok":
            raise PaymentGatewayError(f"Paynow отклонил платёж: {payload.get('error', 'unknown error')}")
        if not self.verify_signature(payload, signature):
            raise PaymentGatewayError("Ответ Paynow с неверной подписью")

        return InitResponse(browser_url=payload.get("browserurl", ""), poll_url=payload.get("pollurl", ""))

    async def poll(self, poll_url: str) -> Dict[str, str]:
        """
        Запрашивает актуальный статус платежа по pollurl.

        :raises InvalidWebhookSignatureError: ответ с неверной подписью
        """
        fields = await self._post(poll_url, {})
        payload, signature = self._split_signed(fields)
        if not self.verify_signature(payload, signature):
            raise InvalidWebhookSignatureError("Ответ Paynow на опрос с неверной подписью")
        return payload
