from __future__ import annotations

import enum
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from opnamedb.apps.inventory.schemas import BatchRead, ProductSummary

from .models import OpnameKind, OpnameStatus


class EditDecision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str


class BatchSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    batch_code: str
    stock_quantity: int
    expiry_date: date
    arrival_date: date


class OpnameTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    batch_id: Optional[int] = None
    product_id: int
    kind: OpnameKind
    status: OpnameStatus
    scheduled_date: Optional[date] = None
    opname_date: Optional[date] = None
    system_stock: int
    physical_stock: Optional[int] = None
    expired_stock: int
    damaged_stock: int
    difference: Optional[int] = None
    residual_quantity: Optional[int] = None
    residual_system_total: Optional[int] = None
    notes: Optional[str] = None
    edit_requested: bool
    edit_request_reason: Optional[str] = None
    edit_requested_at: Optional[datetime] = None
    is_direct: bool
    created_at: datetime
    updated_at: datetime

    user: Optional[UserSummary] = None
    batch: Optional[BatchSummary] = None
    product: Optional[ProductSummary] = None


class OpnameTaskDetails(BaseModel):
    task: OpnameTaskRead
    batches: List[BatchRead]
    total_system_stock: int
    batch_count: int


class ScheduleRequest(BaseModel):
    product_codes: List[str] = Field(..., min_length=1)
    scheduled_date: date
    assigned_user_id: str = Field(..., min_length=1)


class ScheduleResult(BaseModel):
    count: int
    tasks: List[OpnameTaskRead]


class CountSubmission(BaseModel):
    physical_stock: int
    expired_stock: int = 0
    damaged_stock: int = 0
    notes: Optional[str] = None


class ProductCountSubmission(CountSubmission):
    product_code: str = Field(..., min_length=1)


class DirectCountRequest(ProductCountSubmission):
    opname_date: Optional[date] = None


class DirectConfirmRequest(BaseModel):
    inputs: List[DirectCountRequest] = Field(..., min_length=1)


class EditRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class ReviewRequest(BaseModel):
    decision: Optional[EditDecision] = None
    status: Optional[OpnameStatus] = None
    adjust_stock: bool = False
    notes: Optional[str] = None


class ConflictCheckRequest(BaseModel):
    categories: List[str] = Field(..., min_length=1)
    scheduled_date: date
    assigned_user_id: str = Field(..., min_length=1)


class CategoryConflict(BaseModel):
    category_code: str
    category_name: str
    users: List[str]
    pending_count: int
    scheduled_dates: List[date]


class ConflictReport(BaseModel):
    has_conflict: bool
    conflicts: List[CategoryConflict] = Field(default_factory=list)
    message: str
