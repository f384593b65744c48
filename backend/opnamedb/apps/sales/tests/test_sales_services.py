from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.apps.sales import models as sales_models
from opnamedb.apps.sales import router as sales_router
from opnamedb.apps.sales import schemas, services
from opnamedb.errors import Conflict, InsufficientStock, InvalidInput, InvalidQuantity, NotFound

SALE_TIME = datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc)


def _create_user(db, email: str = "cashier@example.com") -> account_models.User:
    user = account_models.User(
        email=email,
        full_name="Cashier",
        role=account_models.AccountRole.STAFF,
        is_active=True,
        hashed_password="x",
    )
    db.add(user)
    db.commit()
    return user


def _create_product(db, code: str, stocks, price: str = "1500") -> catalog_models.Product:
    if not db.query(catalog_models.Category).filter_by(code="AIR").first():
        db.add(catalog_models.Category(code="AIR", name="Air"))
    product = catalog_models.Product(
        code=code,
        name=f"Product {code}",
        category_code="AIR",
        sell_price=Decimal(price),
        purchase_price=Decimal("1000"),
    )
    db.add(product)
    db.flush()
    for idx, stock in enumerate(stocks, start=1):
        db.add(
            inventory_models.Batch(
                batch_code=f"{code}-B{idx}",
                product_id=product.id,
                initial_stock=stock,
                stock_quantity=stock,
                arrival_date=date(2026, 1, 1),
                expiry_date=date(2027, idx, 1),
            )
        )
    db.commit()
    return product


def _stocks(db, product_id: int):
    rows = (
        db.query(inventory_models.Batch)
        .filter_by(product_id=product_id)
        .order_by(inventory_models.Batch.expiry_date.asc())
        .all()
    )
    return [b.stock_quantity for b in rows]


def _sell(db, user, *items, when=SALE_TIME):
    sale = services.create_sale(
        db,
        actor=user,
        sales_date=when,
        items=[schemas.SaleItemCreate(product_code=code, quantity=qty) for code, qty in items],
    )
    db.commit()
    return sale


def test_sale_takes_stock_fifo_and_writes_a_line_per_batch(db_session):
    user = _create_user(db_session)
    product = _create_product(db_session, "P1", [10, 20])

    sale = _sell(db_session, user, ("P1", 12))

    assert [(line.batch_code, line.quantity) for line in sale.lines] == [("P1-B1", 10), ("P1-B2", 2)]
    assert sale.total_amount == Decimal("18000.00")
    assert _stocks(db_session, product.id) == [0, 18]
    read = schemas.SaleRead.model_validate(sale)
    assert read.lines[0].product_code == "P1"
    assert read.lines[0].expiry_date == date(2027, 1, 1)


def test_explicit_selling_price_overrides_list_price(db_session):
    user = _create_user(db_session)
    _create_product(db_session, "P1", [10])

    sale = services.create_sale(
        db_session,
        actor=user,
        sales_date=SALE_TIME,
        items=[schemas.SaleItemCreate(product_code="P1", quantity=2, selling_price=Decimal("1250.50"))],
    )

    assert sale.total_amount == Decimal("2501.00")


def test_identical_sale_on_same_day_is_refused(db_session):
    user = _create_user(db_session)
    product = _create_product(db_session, "P1", [10, 20])
    _sell(db_session, user, ("P1", 12))

    with pytest.raises(Conflict):
        _sell(db_session, user, ("P1", 12), when=SALE_TIME.replace(hour=15))
    db_session.rollback()

    assert _stocks(db_session, product.id) == [0, 18]
    assert db_session.query(sales_models.Sale).count() == 1


def test_different_quantity_or_day_is_not_a_duplicate(db_session):
    user = _create_user(db_session)
    _create_product(db_session, "P1", [10, 20])
    _sell(db_session, user, ("P1", 2))

    _sell(db_session, user, ("P1", 3))
    _sell(db_session, user, ("P1", 2), when=SALE_TIME.replace(day=20))

    assert db_session.query(sales_models.Sale).count() == 3


def test_sale_checks_every_product_before_touching_stock(db_session):
    user = _create_user(db_session)
    p1 = _create_product(db_session, "P1", [10])
    p2 = _create_product(db_session, "P2", [3])

    with pytest.raises(InsufficientStock) as excinfo:
        _sell(db_session, user, ("P1", 4), ("P2", 5))
    db_session.rollback()

    assert excinfo.value.context["shortages"] == [{"product_code": "P2", "requested": 5, "available": 3}]
    assert _stocks(db_session, p1.id) == [10]
    assert _stocks(db_session, p2.id) == [3]
    assert db_session.query(sales_models.Sale).count() == 0


def test_repeated_items_are_checked_together(db_session):
    user = _create_user(db_session)
    _create_product(db_session, "P1", [10])

    with pytest.raises(InsufficientStock):
        _sell(db_session, user, ("P1", 6), ("P1", 6))


def test_sale_input_validation(db_session):
    user = _create_user(db_session)
    _create_product(db_session, "P1", [10])

    with pytest.raises(InvalidInput):
        services.create_sale(db_session, actor=user, items=[])
    with pytest.raises(InvalidQuantity):
        _sell(db_session, user, ("P1", 0))
    with pytest.raises(InvalidInput):
        services.create_sale(
            db_session,
            actor=user,
            items=[schemas.SaleItemCreate(product_code="P1", quantity=1, selling_price=Decimal("-1"))],
        )
    with pytest.raises(NotFound):
        _sell(db_session, user, ("NOPE", 1))


def test_list_and_get_sales(db_session):
    user = _create_user(db_session)
    _create_product(db_session, "P1", [10])
    _create_product(db_session, "P2", [10])
    first = _sell(db_session, user, ("P1", 1))
    second = _sell(db_session, user, ("P2", 1), when=SALE_TIME.replace(day=21))

    assert [s.id for s in services.list_sales(db_session)] == [second.id, first.id]
    assert [s.id for s in services.list_sales(db_session, product_code="P1")] == [first.id]
    assert [s.id for s in services.list_sales(db_session, start_date=date(2026, 10, 20))] == [second.id]
    assert services.list_sales(db_session, product_code="UNKNOWN") == []
    assert services.get_sale(db_session, first.id) is first
    with pytest.raises(NotFound):
        services.get_sale(db_session, 999)


def test_sales_routes_are_registered():
    paths = {route.path for route in sales_router.router.routes}
    assert {"/sales/", "/sales/{sale_id}"} <= paths
