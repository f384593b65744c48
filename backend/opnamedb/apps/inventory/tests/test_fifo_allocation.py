from __future__ import annotations

from datetime import date

import pytest

from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.inventory import allocation
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.errors import InsufficientStock, InvalidQuantity, NotFound


def _batch(batch_id: int, stock: int, expiry: date, arrival: date = date(2026, 1, 1)) -> inventory_models.Batch:
    return inventory_models.Batch(
        id=batch_id,
        batch_code=f"B{batch_id}",
        product_id=1,
        initial_stock=stock,
        stock_quantity=stock,
        expiry_date=expiry,
        arrival_date=arrival,
    )


def _seed_product(db_session, stocks) -> catalog_models.Product:
    db_session.add(catalog_models.Category(code="AIR", name="Air"))
    product = catalog_models.Product(code="P1", name="Mineral Water", category_code="AIR", min_stock=0)
    db_session.add(product)
    db_session.flush()
    for idx, stock in enumerate(stocks, start=1):
        db_session.add(
            inventory_models.Batch(
                batch_code=f"B{idx}",
                product_id=product.id,
                initial_stock=stock,
                stock_quantity=stock,
                arrival_date=date(2026, 1, 1),
                expiry_date=date(2027, idx, 1),
            )
        )
    db_session.commit()
    return product


def _stocks(db_session, product_id: int):
    rows = (
        db_session.query(inventory_models.Batch)
        .filter(inventory_models.Batch.product_id == product_id)
        .order_by(inventory_models.Batch.expiry_date.asc())
        .all()
    )
    return [b.stock_quantity for b in rows]


def test_plan_takes_earliest_expiry_first_and_stops_when_met():
    late = _batch(1, 5, date(2027, 3, 1))
    early = _batch(2, 5, date(2027, 1, 1))
    middle = _batch(3, 5, date(2027, 2, 1))

    plan = allocation.plan_fifo_deductions([late, early, middle], 7)

    assert [(d.batch.batch_code, d.quantity) for d in plan] == [("B2", 5), ("B3", 2)]


def test_plan_breaks_expiry_ties_by_arrival_then_id():
    a = _batch(7, 3, date(2027, 1, 1), arrival=date(2026, 2, 1))
    b = _batch(4, 3, date(2027, 1, 1), arrival=date(2026, 1, 1))
    c = _batch(5, 3, date(2027, 1, 1), arrival=date(2026, 2, 1))

    plan = allocation.plan_fifo_deductions([a, b, c], 9)

    assert [d.batch.id for d in plan] == [4, 5, 7]


def test_plan_skips_empty_batches():
    empty = _batch(1, 0, date(2027, 1, 1))
    full = _batch(2, 4, date(2027, 2, 1))

    plan = allocation.plan_fifo_deductions([empty, full], 4)

    assert [(d.batch.id, d.quantity) for d in plan] == [(2, 4)]


@pytest.mark.parametrize("quantity", [0, -3, 2.5, True, "3"])
def test_plan_rejects_non_positive_or_non_integer_quantities(quantity):
    with pytest.raises(InvalidQuantity):
        allocation.plan_fifo_deductions([_batch(1, 5, date(2027, 1, 1))], quantity)


def test_allocate_deducts_fifo_across_batches(db_session):
    product = _seed_product(db_session, [5, 5, 5])

    plan = allocation.allocate(db_session, "P1", 7)
    db_session.commit()

    assert [d.quantity for d in plan] == [5, 2]
    assert _stocks(db_session, product.id) == [0, 3, 5]


def test_allocate_exact_total_empties_every_batch(db_session):
    product = _seed_product(db_session, [2, 3])

    allocation.allocate(db_session, "P1", 5)
    db_session.commit()

    assert _stocks(db_session, product.id) == [0, 0]


def test_allocate_insufficient_stock_changes_nothing(db_session):
    product = _seed_product(db_session, [5, 5, 5])

    with pytest.raises(InsufficientStock) as excinfo:
        allocation.allocate(db_session, "P1", 16)

    assert excinfo.value.context["requested"] == 16
    assert excinfo.value.context["available"] == 15
    assert excinfo.value.status_code == 409
    db_session.rollback()
    assert _stocks(db_session, product.id) == [5, 5, 5]


def test_allocate_unknown_product(db_session):
    _seed_product(db_session, [5])

    with pytest.raises(NotFound):
        allocation.allocate(db_session, "NOPE", 1)
