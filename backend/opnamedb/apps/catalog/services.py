from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from opnamedb.errors import NotFound
from opnamedb.utils.identifiers import normalize_product_code

from . import models


def find_product_by_code(db: Session, code: object) -> Optional[models.Product]:
    normalised = normalize_product_code(code)
    if not normalised:
        return None
    return db.query(models.Product).filter(models.Product.code == normalised).first()


def get_product_by_code(db: Session, code: object) -> models.Product:
    product = find_product_by_code(db, code)
    if not product:
        raise NotFound("Product not found.", product_code=normalize_product_code(code))
    return product


def get_categories(db: Session, category_codes: Iterable[str]) -> List[models.Category]:
    codes = sorted({c for c in category_codes if c})
    if not codes:
        return []
    return db.query(models.Category).filter(models.Category.code.in_(codes)).all()


def lock_categories(db: Session, category_codes: Iterable[str]) -> List[models.Category]:
    """
    Row-lock the given categories, always in code order, so concurrent
    schedulers touching the same category queue behind each other.
    """
    codes = sorted({c for c in category_codes if c})
    if not codes:
        return []
    return (
        db.query(models.Category)
        .filter(models.Category.code.in_(codes))
        .order_by(models.Category.code.asc())
        .with_for_update(of=models.Category)
        .all()
    )
