from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from opnamedb.apps.audit import services as audit_services
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.catalog import services as catalog_services
from opnamedb.errors import Conflict, InvalidQuantity, NotFound

from . import models, schemas

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 2500


def _fifo_order():
    return (
        models.Batch.expiry_date.asc(),
        models.Batch.arrival_date.asc(),
        models.Batch.id.asc(),
    )


def create_batch(
    db: Session,
    *,
    product_code: str,
    batch_code: str,
    quantity: int,
    expiry_date: date,
    arrival_date: Optional[date] = None,
) -> models.Batch:
    """
    Register a received batch. Used by the receiving scripts and seeding;
    purchasing itself lives outside this service.
    """
    if quantity is None or quantity < 0:
        raise InvalidQuantity("Batch quantity cannot be negative.", batch_code=batch_code, quantity=quantity)
    product = catalog_services.get_product_by_code(db, product_code)
    code = (batch_code or "").strip()
    if db.query(models.Batch).filter(models.Batch.batch_code == code).first():
        raise Conflict("Batch code already exists.", batch_code=code)

    batch = models.Batch(
        batch_code=code,
        product_id=product.id,
        initial_stock=quantity,
        stock_quantity=quantity,
        arrival_date=arrival_date or date.today(),
        expiry_date=expiry_date,
    )
    db.add(batch)
    db.flush()
    return batch


def get_batch(db: Session, batch_id: int) -> models.Batch:
    batch = db.query(models.Batch).filter(models.Batch.id == batch_id).first()
    if not batch:
        raise NotFound("Batch not found.", batch_id=batch_id)
    return batch


def list_batches_for_product(db: Session, product_code: str) -> List[models.Batch]:
    product = catalog_services.get_product_by_code(db, product_code)
    return (
        db.query(models.Batch)
        .filter(models.Batch.product_id == product.id)
        .order_by(*_fifo_order())
        .all()
    )


def lock_batches_for_product(
    db: Session,
    *,
    product_id: int,
    in_stock_only: bool = False,
) -> List[models.Batch]:
    """
    Read a product's batches with row locks held until the transaction ends,
    in FIFO order.
    """
    query = db.query(models.Batch).filter(models.Batch.product_id == product_id)
    if in_stock_only:
        query = query.filter(models.Batch.stock_quantity > 0)
    return query.order_by(*_fifo_order()).with_for_update(of=models.Batch).all()


def list_batches(
    db: Session,
    *,
    search: Optional[str] = None,
    page: int = 0,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> schemas.BatchPage:
    page = max(page, 0)
    limit = limit if limit and limit > 0 else DEFAULT_PAGE_LIMIT

    query = db.query(models.Batch).join(catalog_models.Product, models.Batch.product_id == catalog_models.Product.id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Batch.batch_code.ilike(pattern),
                catalog_models.Product.code.ilike(pattern),
                catalog_models.Product.name.ilike(pattern),
            )
        )

    total = query.count()
    rows = (
        query.order_by(
            catalog_models.Product.name.asc(),
            models.Batch.expiry_date.asc(),
            models.Batch.batch_code.asc(),
        )
        .offset(page * limit)
        .limit(limit)
        .all()
    )

    product_ids = {row.product_id for row in rows}
    totals: Dict[int, Dict[str, int]] = defaultdict(lambda: {"stock": 0, "initial": 0})
    if product_ids:
        aggregates = (
            db.query(
                models.Batch.product_id,
                func.coalesce(func.sum(models.Batch.stock_quantity), 0),
                func.coalesce(func.sum(models.Batch.initial_stock), 0),
            )
            .filter(models.Batch.product_id.in_(product_ids))
            .group_by(models.Batch.product_id)
            .all()
        )
        for product_id, stock, initial in aggregates:
            totals[product_id] = {"stock": int(stock), "initial": int(initial)}

    items = [
        schemas.BatchListItem.model_validate(row).model_copy(
            update={
                "total_stock": totals[row.product_id]["stock"],
                "total_initial": totals[row.product_id]["initial"],
            }
        )
        for row in rows
    ]
    return schemas.BatchPage(
        items=items,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
        page=page,
        limit=limit,
    )


def update_batch_expiry(
    db: Session,
    *,
    batch_id: int,
    expiry_date: date,
    actor_user_id: Optional[str],
) -> models.Batch:
    batch = get_batch(db, batch_id)
    before = batch.expiry_date
    batch.expiry_date = expiry_date
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="batch",
        entity_id=str(batch.id),
        action="update_expiry",
        before={"expiry_date": before.isoformat() if before else None},
        after={"expiry_date": expiry_date.isoformat()},
    )
    return batch


def minimum_stock_alerts(db: Session) -> List[schemas.MinimumStockAlert]:
    """Products whose total batch stock is at or below their minimum."""
    products = db.query(catalog_models.Product).order_by(catalog_models.Product.code.asc()).all()
    batches_by_product: Dict[int, List[models.Batch]] = defaultdict(list)
    for batch in db.query(models.Batch).order_by(*_fifo_order()).all():
        batches_by_product[batch.product_id].append(batch)

    alerts: List[schemas.MinimumStockAlert] = []
    for product in products:
        batches = batches_by_product.get(product.id, [])
        current = sum(b.stock_quantity for b in batches)
        if current > (product.min_stock or 0):
            continue
        alerts.append(
            schemas.MinimumStockAlert(
                product_code=product.code,
                product_name=product.name,
                category_code=product.category_code,
                min_stock=product.min_stock or 0,
                current_stock=current,
                sell_price=product.sell_price or 0,
                batches=[
                    schemas.BatchStockLine(
                        batch_code=b.batch_code,
                        initial_stock=b.initial_stock,
                        stock_quantity=b.stock_quantity,
                    )
                    for b in batches
                ],
            )
        )
    return alerts
