from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.audit import services as audit_services
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.catalog import services as catalog_services
from opnamedb.apps.inventory import allocation
from opnamedb.apps.inventory import services as inventory_services
from opnamedb.errors import Conflict, InsufficientStock, InvalidInput, InvalidQuantity, NotFound

from . import models, schemas

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _day_bounds(value: datetime) -> Tuple[datetime, datetime]:
    start = datetime.combine(value.date(), time.min, tzinfo=value.tzinfo)
    return start, start + timedelta(days=1)


def _signature(entries) -> List[Tuple[str, str, int]]:
    """(product_code, price, total quantity) per product/price, sorted."""
    totals: Dict[Tuple[str, str], int] = {}
    for code, price, quantity in entries:
        key = (code, str(_money(price)))
        totals[key] = totals.get(key, 0) + int(quantity)
    return sorted((code, price, qty) for (code, price), qty in totals.items())


def _resolve_items(
    db: Session, items: Sequence[schemas.SaleItemCreate]
) -> List[Tuple[catalog_models.Product, int, Decimal]]:
    resolved = []
    for item in items:
        product = catalog_services.get_product_by_code(db, item.product_code)
        quantity = item.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "Quantity must be a positive whole number.",
                product_code=product.code,
                quantity=quantity,
            )
        price = item.selling_price if item.selling_price is not None else product.sell_price
        if price is None or Decimal(price) < 0:
            raise InvalidInput("Selling price cannot be negative.", product_code=product.code)
        resolved.append((product, quantity, _money(price)))
    return resolved


def is_duplicate_sale(
    db: Session,
    *,
    user_id: str,
    sales_date: datetime,
    resolved: Sequence[Tuple[catalog_models.Product, int, Decimal]],
) -> bool:
    """
    True if the user already recorded a sale on the same day with the same
    products, prices and quantities. Lines are compared per product, so a
    sale whose items were split over several batches still matches.
    """
    wanted = _signature((p.code, price, qty) for p, qty, price in resolved)
    start, end = _day_bounds(sales_date)
    existing = (
        db.query(models.Sale)
        .filter(
            models.Sale.user_id == user_id,
            models.Sale.sales_date >= start,
            models.Sale.sales_date < end,
        )
        .all()
    )
    for sale in existing:
        current = _signature((line.product.code, line.selling_price, line.quantity) for line in sale.lines)
        if current == wanted:
            return True
    return False


def _validate_availability(
    db: Session, resolved: Sequence[Tuple[catalog_models.Product, int, Decimal]]
) -> None:
    requested: "OrderedDict[int, Tuple[catalog_models.Product, int]]" = OrderedDict()
    for product, quantity, _ in resolved:
        _, total = requested.get(product.id, (product, 0))
        requested[product.id] = (product, total + quantity)

    shortages = []
    for product, quantity in requested.values():
        batches = inventory_services.lock_batches_for_product(db, product_id=product.id, in_stock_only=True)
        available = sum(b.stock_quantity for b in batches)
        if available < quantity:
            shortages.append(
                schemas.StockShortage(product_code=product.code, requested=quantity, available=available)
            )
    if shortages:
        raise InsufficientStock(
            "Insufficient stock for some products.",
            shortages=[s.model_dump() for s in shortages],
        )


def create_sale(
    db: Session,
    *,
    actor: account_models.User,
    items: Sequence[schemas.SaleItemCreate],
    sales_date: Optional[datetime] = None,
) -> models.Sale:
    """
    Record a sale and take its stock FIFO by expiry.

    Every product is checked for availability before any batch is touched;
    each batch deduction becomes one sale line.
    """
    if not items:
        raise InvalidInput("At least one item is required.", field="items")
    sales_date = sales_date or datetime.now(timezone.utc)

    resolved = _resolve_items(db, items)
    if is_duplicate_sale(db, user_id=actor.id, sales_date=sales_date, resolved=resolved):
        raise Conflict("Duplicate sale detected. This exact sale already exists.", sales_date=sales_date.date().isoformat())
    _validate_availability(db, resolved)

    sale = models.Sale(user_id=actor.id, sales_date=sales_date, total_amount=Decimal("0"))
    db.add(sale)
    db.flush()

    total = Decimal("0")
    for product, quantity, price in resolved:
        for deduction in allocation.allocate(db, product.code, quantity):
            subtotal = _money(price * deduction.quantity)
            sale.lines.append(
                models.SaleLine(
                    product_id=product.id,
                    batch_id=deduction.batch.id,
                    quantity=deduction.quantity,
                    selling_price=price,
                    subtotal=subtotal,
                )
            )
            total += subtotal
    sale.total_amount = total
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=actor.id,
        entity_type="sale",
        entity_id=str(sale.id),
        action="create",
        after={
            "total_amount": str(total),
            "lines": [{"batch_id": line.batch_id, "quantity": line.quantity} for line in sale.lines],
        },
    )
    logger.info("Sale recorded", extra={"sale_id": sale.id, "user_id": actor.id, "lines": len(sale.lines)})
    return sale


def get_sale(db: Session, sale_id: int) -> models.Sale:
    sale = db.query(models.Sale).filter(models.Sale.id == sale_id).first()
    if not sale:
        raise NotFound("Sale not found.", sale_id=sale_id)
    return sale


def list_sales(
    db: Session,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    product_code: Optional[str] = None,
) -> List[models.Sale]:
    query = db.query(models.Sale)
    if start_date:
        query = query.filter(models.Sale.sales_date >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(models.Sale.sales_date < datetime.combine(end_date + timedelta(days=1), time.min))
    if product_code:
        product = catalog_services.find_product_by_code(db, product_code)
        if not product:
            return []
        query = query.filter(models.Sale.lines.any(models.SaleLine.product_id == product.id))
    return query.order_by(models.Sale.sales_date.desc(), models.Sale.id.desc()).all()
