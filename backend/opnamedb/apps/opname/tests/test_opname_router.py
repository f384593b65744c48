from __future__ import annotations

import json
from datetime import date

from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.apps.opname import router as opname_router
from opnamedb.apps.opname import schemas


def _create_user(db, email: str, role: account_models.AccountRole) -> account_models.User:
    user = account_models.User(email=email, full_name="Rina", role=role, is_active=True, hashed_password="x")
    db.add(user)
    db.commit()
    return user


def _seed(db):
    db.add(catalog_models.Category(code="AIR", name="Air"))
    product = catalog_models.Product(code="P1", name="Mineral Water", category_code="AIR")
    db.add(product)
    db.flush()
    db.add(
        inventory_models.Batch(
            batch_code="B1",
            product_id=product.id,
            initial_stock=10,
            stock_quantity=10,
            arrival_date=date(2026, 1, 1),
            expiry_date=date(2027, 1, 1),
        )
    )
    db.commit()


def test_schedule_then_conflict_check_answers_409(db_session):
    admin = _create_user(db_session, "admin@example.com", account_models.AccountRole.ADMIN)
    staff = _create_user(db_session, "staff@example.com", account_models.AccountRole.STAFF)
    _seed(db_session)

    result = opname_router.schedule_opname(
        schemas.ScheduleRequest(product_codes=["P1"], scheduled_date=date.today(), assigned_user_id=staff.id),
        db=db_session,
        current_user=admin,
    )
    assert result.count == 1

    response = opname_router.check_category_conflict(
        schemas.ConflictCheckRequest(categories=["AIR"], scheduled_date=date.today(), assigned_user_id=staff.id),
        db=db_session,
        current_user=admin,
    )

    assert response.status_code == 409
    body = json.loads(response.body)
    assert body["has_conflict"] is True
    assert body["conflicts"][0]["category_code"] == "AIR"


def test_conflict_check_without_open_counts(db_session):
    admin = _create_user(db_session, "admin@example.com", account_models.AccountRole.ADMIN)
    _seed(db_session)

    report = opname_router.check_category_conflict(
        schemas.ConflictCheckRequest(categories=["AIR"], scheduled_date=date.today(), assigned_user_id=admin.id),
        db=db_session,
        current_user=admin,
    )

    assert report.has_conflict is False


def test_opname_routes_are_registered():
    paths = {route.path for route in opname_router.router.routes}
    assert {
        "/opname/schedule",
        "/opname/check-category-conflict",
        "/opname/tasks",
        "/opname/submit",
        "/opname/tasks/{task_id}/submit",
        "/opname/tasks/{task_id}/request-edit",
        "/opname/tasks/{task_id}/review",
        "/opname/direct",
        "/opname/direct/confirm",
        "/opname/all",
        "/opname/staff/history",
        "/opname/tasks/{task_id}",
        "/opname/tasks/{task_id}/details",
    } <= paths
