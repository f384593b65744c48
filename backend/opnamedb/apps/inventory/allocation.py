"""
FIFO-by-expiry stock allocation.

Every outbound movement (sales today) takes stock from the batch that
expires first. The planner is pure so the ordering and stop rule can be
checked without a database; `allocate` wraps it with row locks and the
actual stock mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from opnamedb.apps.catalog import services as catalog_services
from opnamedb.errors import InsufficientStock, InvalidQuantity

from . import models, services

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deduction:
    batch: models.Batch
    quantity: int


def _validate_quantity(quantity: object) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity("Quantity must be a positive whole number.", quantity=quantity)
    return quantity


def plan_fifo_deductions(
    batches: Sequence[models.Batch],
    quantity: int,
    *,
    product_code: Optional[str] = None,
) -> List[Deduction]:
    """
    Decide how much to take from each batch without touching any of them.

    Batches are consumed by (expiry_date, arrival_date, id); each gives
    min(remaining, stock) and the walk stops as soon as the request is met.
    Raises InsufficientStock before planning anything if the batches cannot
    cover the request.
    """
    quantity = _validate_quantity(quantity)
    candidates = sorted((b for b in batches if (b.stock_quantity or 0) > 0), key=lambda b: b.fifo_key)

    available = sum(b.stock_quantity for b in candidates)
    if available < quantity:
        raise InsufficientStock(
            "Not enough stock to cover the requested quantity.",
            product_code=product_code,
            requested=quantity,
            available=available,
        )

    plan: List[Deduction] = []
    remaining = quantity
    for batch in candidates:
        if remaining == 0:
            break
        take = min(remaining, batch.stock_quantity)
        plan.append(Deduction(batch=batch, quantity=take))
        remaining -= take
    return plan


def allocate(db: Session, product_code: str, requested_quantity: int) -> List[Deduction]:
    """
    Deduct `requested_quantity` of a product from its batches, FIFO by expiry.

    The product's batches are locked for the rest of the transaction. Nothing
    is modified unless the whole quantity can be served.
    """
    requested_quantity = _validate_quantity(requested_quantity)
    product = catalog_services.get_product_by_code(db, product_code)
    batches = services.lock_batches_for_product(db, product_id=product.id, in_stock_only=True)

    plan = plan_fifo_deductions(batches, requested_quantity, product_code=product.code)
    for deduction in plan:
        deduction.batch.stock_quantity = deduction.batch.stock_quantity - deduction.quantity
    db.flush()

    logger.info(
        "Allocated stock",
        extra={
            "product_code": product.code,
            "requested": requested_quantity,
            "batches": [d.batch.id for d in plan],
        },
    )
    return plan
