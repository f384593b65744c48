from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.orm import sessionmaker

from opnamedb import main
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.database import transaction
from opnamedb.errors import TransactionFailure
from opnamedb.jobs import opname_sweep_runner


def _batch(code: str) -> inventory_models.Batch:
    return inventory_models.Batch(
        batch_code=code,
        product_id=1,
        initial_stock=1,
        stock_quantity=1,
        arrival_date=date(2026, 1, 1),
        expiry_date=date(2027, 1, 1),
    )


def _seed_product(db):
    db.add(catalog_models.Category(code="AIR", name="Air"))
    db.add(catalog_models.Product(id=1, code="P1", name="Water", category_code="AIR"))
    db.commit()


def test_transaction_commits_on_success(db_session):
    _seed_product(db_session)

    with transaction(db_session):
        db_session.add(_batch("B1"))

    assert db_session.query(inventory_models.Batch).count() == 1


def test_transaction_rolls_back_on_error(db_session):
    _seed_product(db_session)

    with pytest.raises(ValueError):
        with transaction(db_session):
            db_session.add(_batch("B1"))
            db_session.flush()
            raise ValueError("boom")

    assert db_session.query(inventory_models.Batch).count() == 0


def test_store_errors_become_transaction_failures(db_session):
    _seed_product(db_session)
    db_session.add(_batch("B1"))
    db_session.commit()

    with pytest.raises(TransactionFailure) as excinfo:
        with transaction(db_session):
            db_session.add(_batch("B1"))

    assert excinfo.value.status_code == 503
    assert db_session.query(inventory_models.Batch).count() == 1


def test_sweep_runner_uses_its_own_session(db_session, monkeypatch):
    monkeypatch.setattr(
        opname_sweep_runner,
        "WriteSessionLocal",
        sessionmaker(bind=db_session.get_bind(), autoflush=False, autocommit=False),
    )

    assert opname_sweep_runner.run(today=date(2026, 10, 19)) == 0


def test_app_mounts_every_router():
    paths = {route.path for route in main.app.routes}
    for expected in ("/health", "/auth/login", "/batches/", "/opname/schedule", "/sales/", "/audit/"):
        assert expected in paths


def test_allowed_origins_from_env(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://a.example, https://b.example")
    assert main._allowed_origins() == ["https://a.example", "https://b.example"]
    monkeypatch.delenv("CORS_ALLOWED_ORIGINS")
    assert "http://localhost:5173" in main._allowed_origins()
