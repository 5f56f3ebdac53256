# marketplace/models/commission.py

from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey
from marketplace.utils.database import Base, utcnow

class CommissionRecord(Base):
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)  # одна запись на заказ
    rate = Column(Numeric(5, 4), nullable=False)            # ставка на момент оплаты
    total_price = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    seller_payout = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
