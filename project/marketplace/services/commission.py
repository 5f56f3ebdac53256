# marketplace/services/commission.py

"""
Расчёт комиссии платформы.

Чистые функции без побочных эффектов: ставка передаётся явно
(берётся из настроек в момент оплаты заказа).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.future import select

from marketplace.models.commission import CommissionRecord as CommissionModel

CENT = Decimal("0.01")


@dataclass(frozen=True)
class Commission:
    platform_fee: Decimal
    seller_payout: Decimal


def to_money(value) -> Decimal:
    """Приводит число к Decimal с двумя знаками (округление half-up)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(total_price, rate) -> Commission:
    """
    Делит сумму заказа между платформой и продавцом.

    Сначала округляется комиссия платформы, выплата продавцу считается как
    остаток, поэтому platform_fee + seller_payout == total_price всегда.

    >>> compute_commission("99.99", "0.15")
    Commission(platform_fee=Decimal('15.00'), seller_payout=Decimal('84.99'))
    """
    total = to_money(total_price)
    rate = Decimal(str(rate))
    if rate < 0 or rate > 1:
        raise ValueError(f"Ставка комиссии вне диапазона 0..1: {rate}")
    if total < 0:
        raise ValueError(f"Отрицательная сумма заказа: {total}")

    platform_fee = (total * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return Commission(platform_fee=platform_fee, seller_payout=total - platform_fee)


async def read_commissions_service(request: Request, skip: int = 0, limit: int = 100) -> tuple[list[CommissionModel], Decimal, Decimal]:
    """
    Список записей комиссии и итоги по всем оплаченным заказам.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(CommissionModel).order_by(CommissionModel.id.desc()).offset(skip).limit(limit)
    )
    records = result.scalars().all()

    totals = await db.execute(
        select(func.coalesce(func.sum(CommissionModel.platform_fee), 0), func.coalesce(func.sum(CommissionModel.seller_payout), 0))
    )
    total_fee, total_payout = totals.one()

    await log.log_info("admin", f"{len(records)} записей комиссии загружено")
    return records, to_money(total_fee), to_money(total_payout)
