from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from opnamedb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(128), nullable=False)

    products = relationship("Product", back_populates="category", lazy="select")


class Product(Base):
    """
    Catalogue entry. Stock lives on the product's batches; the product row
    only carries the reorder threshold and list prices.
    """

    __tablename__ = "products"
    __table_args__ = (CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    category_code = Column(
        String(32),
        ForeignKey("categories.code", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    min_stock = Column(Integer, nullable=False, default=0)
    sell_price = Column(Numeric(14, 2), nullable=False, default=0)
    purchase_price = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    category = relationship("Category", back_populates="products", lazy="joined")
    batches = relationship("Batch", back_populates="product", lazy="select")

    def __repr__(self) -> str:
        return f"<Product code={self.code} category={self.category_code}>"
