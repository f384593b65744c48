from __future__ import annotations

from datetime import date

import pytest

from opnamedb.apps.audit import models as audit_models
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.inventory import router as inventory_router
from opnamedb.apps.inventory import services as inventory_services
from opnamedb.errors import Conflict, InvalidQuantity, NotFound


def _seed_catalog(db_session):
    db_session.add(catalog_models.Category(code="AIR", name="Air"))
    db_session.add(catalog_models.Category(code="SNK", name="Snacks"))
    db_session.add(catalog_models.Product(code="P1", name="Mineral Water", category_code="AIR", min_stock=10))
    db_session.add(catalog_models.Product(code="P2", name="Crackers", category_code="SNK", min_stock=5))
    db_session.commit()


def test_create_batch_and_list_in_fifo_order(db_session):
    _seed_catalog(db_session)
    inventory_services.create_batch(
        db_session, product_code="P1", batch_code="LATE", quantity=4, expiry_date=date(2027, 6, 1)
    )
    inventory_services.create_batch(
        db_session, product_code="P1", batch_code="EARLY", quantity=3, expiry_date=date(2027, 1, 1)
    )
    db_session.commit()

    batches = inventory_services.list_batches_for_product(db_session, "P1")

    assert [b.batch_code for b in batches] == ["EARLY", "LATE"]
    assert batches[0].initial_stock == batches[0].stock_quantity == 3


def test_create_batch_rejects_duplicates_and_negative_quantities(db_session):
    _seed_catalog(db_session)
    inventory_services.create_batch(
        db_session, product_code="P1", batch_code="B1", quantity=4, expiry_date=date(2027, 6, 1)
    )

    with pytest.raises(Conflict):
        inventory_services.create_batch(
            db_session, product_code="P1", batch_code="B1", quantity=1, expiry_date=date(2027, 6, 1)
        )
    with pytest.raises(InvalidQuantity):
        inventory_services.create_batch(
            db_session, product_code="P1", batch_code="B2", quantity=-1, expiry_date=date(2027, 6, 1)
        )


def test_list_batches_reports_product_totals_and_pages(db_session):
    _seed_catalog(db_session)
    for code, qty in (("B1", 4), ("B2", 6)):
        inventory_services.create_batch(
            db_session, product_code="P1", batch_code=code, quantity=qty, expiry_date=date(2027, 1, 1)
        )
    inventory_services.create_batch(
        db_session, product_code="P2", batch_code="C1", quantity=2, expiry_date=date(2027, 1, 1)
    )
    db_session.commit()

    page = inventory_services.list_batches(db_session, search="water", page=0, limit=1)

    assert page.total == 2
    assert page.total_pages == 2
    assert len(page.items) == 1
    assert page.items[0].total_stock == 10
    assert page.items[0].total_initial == 10


def test_minimum_stock_alerts_use_remaining_stock(db_session):
    _seed_catalog(db_session)
    inventory_services.create_batch(
        db_session, product_code="P1", batch_code="B1", quantity=10, expiry_date=date(2027, 1, 1)
    )
    inventory_services.create_batch(
        db_session, product_code="P2", batch_code="C1", quantity=9, expiry_date=date(2027, 1, 1)
    )
    db_session.commit()

    alerts = inventory_services.minimum_stock_alerts(db_session)

    assert [a.product_code for a in alerts] == ["P1"]
    assert alerts[0].current_stock == 10
    assert [line.batch_code for line in alerts[0].batches] == ["B1"]


def test_update_batch_expiry_is_audited(db_session):
    _seed_catalog(db_session)
    batch = inventory_services.create_batch(
        db_session, product_code="P1", batch_code="B1", quantity=1, expiry_date=date(2027, 1, 1)
    )
    db_session.commit()

    inventory_services.update_batch_expiry(
        db_session, batch_id=batch.id, expiry_date=date(2027, 3, 1), actor_user_id=None
    )
    db_session.commit()

    assert batch.expiry_date == date(2027, 3, 1)
    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "update_expiry")
        .one()
    )
    assert event.after == {"expiry_date": "2027-03-01"}


def test_get_batch_missing(db_session):
    with pytest.raises(NotFound):
        inventory_services.get_batch(db_session, 999)


def test_batch_routes_are_registered():
    paths = {route.path for route in inventory_router.router.routes}
    assert {
        "/batches/",
        "/batches/min-stock",
        "/batches/product/{product_code}",
        "/batches/{batch_id}",
        "/batches/{batch_id}/expiry",
    } <= paths
