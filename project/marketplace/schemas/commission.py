# marketplace/schemas/commission.py

from decimal import Decimal
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel

class CommissionRecord(BaseModel):
    id: int
    order_id: int
    rate: Decimal
    total_price: Decimal
    platform_fee: Decimal
    seller_payout: Decimal
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class CommissionSummary(BaseModel):
    records: List[CommissionRecord]
    total_platform_fee: Decimal
    total_seller_payout: Decimal
