from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from opnamedb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (Index("ix_sales_user_date", "user_id", "sales_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    sales_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    lines = relationship(
        "SaleLine",
        back_populates="sale",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )


class SaleLine(Base):
    """One batch deduction of a sale; a sold item spanning batches has several lines."""

    __tablename__ = "sale_lines"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    selling_price = Column(Numeric(14, 2), nullable=False)
    subtotal = Column(Numeric(14, 2), nullable=False)

    sale = relationship("Sale", back_populates="lines")
    product = relationship("Product", lazy="joined")
    batch = relationship("Batch", lazy="joined")

    @property
    def product_code(self):
        return self.product.code if self.product else None

    @property
    def batch_code(self):
        return self.batch.batch_code if self.batch else None

    @property
    def expiry_date(self):
        return self.batch.expiry_date if self.batch else None
