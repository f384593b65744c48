from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from opnamedb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Batch(Base):
    """
    One delivery of a product. Stock is tracked per batch so that goods
    leave in expiry order; a product's stock is the sum over its batches.
    """

    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_batches_stock_non_negative"),
        CheckConstraint("initial_stock >= 0", name="ck_batches_initial_non_negative"),
        Index("ix_batches_product_fifo", "product_id", "expiry_date", "arrival_date", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    batch_code = Column(String(64), nullable=False, unique=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    initial_stock = Column(Integer, nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=False, default=0)
    arrival_date = Column(Date, nullable=False, default=date.today)
    expiry_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    product = relationship("Product", back_populates="batches", lazy="joined")

    @property
    def fifo_key(self):
        return (self.expiry_date, self.arrival_date, self.id)

    def __repr__(self) -> str:
        return f"<Batch code={self.batch_code} product_id={self.product_id} stock={self.stock_quantity}>"
