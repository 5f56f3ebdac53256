# marketplace/config.py

from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    AUTH_SECRET_KEY: str
    AUTH_ALGORITHM: str = "HS256"

    DATABASE_URL: str = "sqlite+aiosqlite:///./marketplace.db"

    # Комиссия платформы (доля от суммы заказа)
    COMMISSION_RATE: Decimal = Decimal("0.10")

    # Paynow
    PAYNOW_INTEGRATION_ID: str = ""
    PAYNOW_INTEGRATION_KEY: str = ""
    PAYNOW_RETURN_URL: str = ""
    PAYNOW_RESULT_URL: str = ""
    PAYNOW_AUTH_EMAIL: str = ""
    PAYNOW_INITIATE_URL: str = "https://www.paynow.co.zw/interface/initiatetransaction"
    PAYNOW_TIMEOUT: float = 30.0

    FRONTEND_URL: str = ""

    # Ручное подтверждение оплаты (EcoCash / банковский перевод)
    MANUAL_PAYMENT_REQUIRE_PROOF: bool = True

    NOTIFY_TIMEOUT: float = 10.0

    # Реквизиты платформы для ручной оплаты
    PLATFORM_BUSINESS_NAME: str = "Wyzar Marketplace"
    PLATFORM_ECOCASH_NAME: str = "Wyzar Marketplace"
    PLATFORM_ECOCASH_NUMBER: str = ""
    PLATFORM_BANK_NAME: str = ""
    PLATFORM_BANK_ACCOUNT_NAME: str = ""
    PLATFORM_BANK_ACCOUNT_NUMBER: str = ""
    PLATFORM_CONTACT_EMAIL: str = ""
    PLATFORM_CONTACT_WHATSAPP: str = ""

    LOG_DIR: str = "log"
    LOG_PRINT: str = "1"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("COMMISSION_RATE")
    @classmethod
    def check_commission_rate(cls, value: Decimal) -> Decimal:
        if value < 0 or value > 1:
            raise ValueError("COMMISSION_RATE должен быть в диапазоне 0..1")
        return value

settings = Settings()
