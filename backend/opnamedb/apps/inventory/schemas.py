from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    category_code: str


class BatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_code: str
    product_id: int
    initial_stock: int
    stock_quantity: int
    arrival_date: date
    expiry_date: date
    created_at: datetime
    product: Optional[ProductSummary] = None


class BatchListItem(BatchRead):
    total_stock: int = 0
    total_initial: int = 0


class BatchPage(BaseModel):
    items: List[BatchListItem]
    total: int
    total_pages: int
    page: int
    limit: int


class BatchExpiryUpdate(BaseModel):
    expiry_date: date


class BatchStockLine(BaseModel):
    batch_code: str
    initial_stock: int
    stock_quantity: int


class MinimumStockAlert(BaseModel):
    product_code: str
    product_name: str
    category_code: str
    min_stock: int
    current_stock: int
    sell_price: Decimal
    batches: List[BatchStockLine]
