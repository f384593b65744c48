from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.database import get_db, transaction
from opnamedb.security import get_current_active_user, require_roles

from . import schemas, services

router = APIRouter(prefix="/batches", tags=["batches"])

BATCH_WRITE_ROLES = [account_models.AccountRole.ADMIN]


@router.get("/", response_model=schemas.BatchPage)
def list_batches(
    search: Optional[str] = None,
    page: int = Query(0, ge=0),
    limit: int = Query(services.DEFAULT_PAGE_LIMIT, ge=1),
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_batches(db, search=search, page=page, limit=limit)


@router.get("/min-stock", response_model=List[schemas.MinimumStockAlert])
def minimum_stock_alerts(
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.minimum_stock_alerts(db)


@router.get("/product/{product_code}", response_model=List[schemas.BatchRead])
def list_batches_for_product(
    product_code: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.list_batches_for_product(db, product_code)


@router.get("/{batch_id}", response_model=schemas.BatchRead)
def get_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
):
    return services.get_batch(db, batch_id)


@router.put("/{batch_id}/expiry", response_model=schemas.BatchRead)
def update_batch_expiry(
    batch_id: int,
    payload: schemas.BatchExpiryUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_roles(*BATCH_WRITE_ROLES)),
):
    with transaction(db):
        batch = services.update_batch_expiry(
            db,
            batch_id=batch_id,
            expiry_date=payload.expiry_date,
            actor_user_id=current_user.id,
        )
    db.refresh(batch)
    return batch
