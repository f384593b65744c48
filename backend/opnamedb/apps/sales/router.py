from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.database import get_db, transaction
from opnamedb.security import get_current_active_user

from . import schemas, services

router = APIRouter(prefix="/sales", tags=["sales"])


@router.post("/", response_model=schemas.SaleRead, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: schemas.SaleCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    with transaction(db):
        sale = services.create_sale(db, actor=current_user, items=payload.items, sales_date=payload.sales_date)
    db.refresh(sale)
    return sale


@router.get("/", response_model=List[schemas.SaleRead])
def list_sales(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    product_code: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_sales(db, start_date=start_date, end_date=end_date, product_code=product_code)


@router.get("/{sale_id}", response_model=schemas.SaleRead)
def get_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_sale(db, sale_id)
