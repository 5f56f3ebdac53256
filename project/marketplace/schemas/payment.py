# marketplace/schemas/payment.py

from typing import Optional

from pydantic import BaseModel

from marketplace.models.order import OrderStatus


class EcocashDetails(BaseModel):
    name: str
    number: str


class BankDetails(BaseModel):
    bank_name: str
    account_name: str
    account_number: str


class ContactDetails(BaseModel):
    whatsapp: str
    email: str


class PlatformPaymentDetails(BaseModel):
    """Реквизиты платформы для оплаты через EcoCash или банковский перевод."""
    business_name: str
    ecocash: EcocashDetails
    bank: BankDetails
    contact: ContactDetails


class PaymentResult(BaseModel):
    order_id: int
    status: OrderStatus
    changed: bool
    message: str
    gateway_status: Optional[str] = None
