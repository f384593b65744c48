from __future__ import annotations

import argparse
from datetime import date, timedelta
from decimal import Decimal

from opnamedb.database import WriteSessionLocal, transaction
from opnamedb.apps.accounts import models as account_models
from opnamedb.apps.accounts import schemas as account_schemas
from opnamedb.apps.accounts import services as account_services
from opnamedb.apps.catalog import models as catalog_models
from opnamedb.apps.catalog import services as catalog_services
from opnamedb.apps.inventory import models as inventory_models
from opnamedb.apps.inventory import services as inventory_services

DEMO_PASSWORD = "ChangeMe123!"

CATEGORIES = [("AIR", "Air Mineral"), ("SNK", "Snacks")]

# (code, name, category, min_stock, sell, purchase, [(batch_code, qty, days_to_expiry)])
PRODUCTS = [
    ("8991002101", "Mineral Water 600ml", "AIR", 24, "3500", "2500", [("AIR-0001", 40, 90), ("AIR-0002", 60, 180)]),
    ("8991002102", "Mineral Water 1500ml", "AIR", 12, "6000", "4500", [("AIR-0003", 30, 120)]),
    ("8992003001", "Rice Crackers", "SNK", 10, "8000", "6000", [("SNK-0001", 15, 30), ("SNK-0002", 20, 60)]),
]


def _get_or_create_user(db, *, email: str, full_name: str, role: account_models.AccountRole) -> account_models.User:
    user = account_services.get_user_by_email(db, email)
    if user:
        return user
    return account_services.create_user(
        db,
        account_schemas.UserCreate(email=email, full_name=full_name, role=role, password=DEMO_PASSWORD),
    )


def _get_or_create_category(db, code: str, name: str) -> catalog_models.Category:
    category = db.query(catalog_models.Category).filter(catalog_models.Category.code == code).first()
    if category:
        return category
    category = catalog_models.Category(code=code, name=name)
    db.add(category)
    db.flush()
    return category


def seed(db, *, today: date) -> dict:
    created_batches = 0
    admin = _get_or_create_user(
        db, email="admin@example.com", full_name="Demo Admin", role=account_models.AccountRole.ADMIN
    )
    staff = _get_or_create_user(
        db, email="staff@example.com", full_name="Demo Staff", role=account_models.AccountRole.STAFF
    )
    for code, name in CATEGORIES:
        _get_or_create_category(db, code, name)

    for code, name, category, min_stock, sell, purchase, batches in PRODUCTS:
        if not catalog_services.find_product_by_code(db, code):
            db.add(
                catalog_models.Product(
                    code=code,
                    name=name,
                    category_code=category,
                    min_stock=min_stock,
                    sell_price=Decimal(sell),
                    purchase_price=Decimal(purchase),
                )
            )
            db.flush()
        for batch_code, quantity, days in batches:
            exists = (
                db.query(inventory_models.Batch)
                .filter(inventory_models.Batch.batch_code == batch_code)
                .first()
            )
            if exists:
                continue
            inventory_services.create_batch(
                db,
                product_code=code,
                batch_code=batch_code,
                quantity=quantity,
                expiry_date=today + timedelta(days=days),
                arrival_date=today,
            )
            created_batches += 1

    return {"admin": admin.email, "staff": staff.email, "batches_created": created_batches}


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo users, products and batches.")
    parser.add_argument("--today", type=date.fromisoformat, default=None, help="Arrival date (YYYY-MM-DD).")
    args = parser.parse_args()

    db = WriteSessionLocal()
    try:
        with transaction(db):
            summary = seed(db, today=args.today or date.today())
    finally:
        db.close()

    print("[OK] Demo data ready:")
    for key, value in summary.items():
        print(f"  {key}: {value}")
    print(f"  login password: {DEMO_PASSWORD}")


if __name__ == "__main__":
    main()
