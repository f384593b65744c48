from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SaleItemCreate(BaseModel):
    product_code: str = Field(..., min_length=1)
    quantity: int
    selling_price: Optional[Decimal] = None


class SaleCreate(BaseModel):
    sales_date: Optional[datetime] = None
    items: List[SaleItemCreate] = Field(..., min_length=1)


class SaleLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    batch_id: int
    quantity: int
    selling_price: Decimal
    subtotal: Decimal
    product_code: Optional[str] = None
    batch_code: Optional[str] = None
    expiry_date: Optional[date] = None


class SaleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    sales_date: datetime
    total_amount: Decimal
    created_at: datetime
    lines: List[SaleLineRead] = Field(default_factory=list)


class StockShortage(BaseModel):
    product_code: str
    requested: int
    available: int
