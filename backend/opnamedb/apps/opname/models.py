from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from opnamedb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpnameStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    SUBMITTED = "submitted"
    ADJUSTED = "adjusted"
    PENDING = "pending"


class OpnameKind(str, enum.Enum):
    BATCH = "batch"
    RESIDUAL = "residual"


OPEN_STATUSES = (OpnameStatus.SCHEDULED, OpnameStatus.SUBMITTED)


class OpnameTask(Base):
    """
    One stock count of one batch.

    Scheduling creates a task per batch of the product; the staff member's
    single count for the product is later split back onto these rows.
    Counted units that no batch absorbed are kept on a separate row with
    kind=RESIDUAL and no batch.

    Tasks are never deleted; ADJUSTED is terminal.
    """

    __tablename__ = "opname_tasks"
    __table_args__ = (
        CheckConstraint(
            "(kind = 'residual' AND batch_id IS NULL) OR (kind = 'batch' AND batch_id IS NOT NULL)",
            name="ck_opname_tasks_kind_batch",
        ),
        CheckConstraint("system_stock >= 0", name="ck_opname_tasks_system_non_negative"),
        CheckConstraint("physical_stock IS NULL OR physical_stock >= 0", name="ck_opname_tasks_physical_non_negative"),
        Index("ix_opname_tasks_user_status", "user_id", "status"),
        Index("ix_opname_tasks_product_status", "product_id", "status"),
        Index("ix_opname_tasks_status_scheduled", "status", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="RESTRICT"), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    kind = Column(
        SAEnum(OpnameKind, name="opname_kind_enum", native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OpnameKind.BATCH,
    )
    status = Column(
        SAEnum(OpnameStatus, name="opname_status_enum", native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OpnameStatus.SCHEDULED,
        index=True,
    )

    # Null scheduled_date marks an admin direct count.
    scheduled_date = Column(Date, nullable=True, index=True)
    opname_date = Column(Date, nullable=True, index=True)

    system_stock = Column(Integer, nullable=False, default=0)
    physical_stock = Column(Integer, nullable=True)
    expired_stock = Column(Integer, nullable=False, default=0)
    damaged_stock = Column(Integer, nullable=False, default=0)

    residual_quantity = Column(Integer, nullable=True)
    residual_system_total = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)

    edit_requested = Column(Boolean, nullable=False, default=False)
    edit_request_reason = Column(Text, nullable=True)
    edit_requested_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", foreign_keys=[user_id], back_populates="opname_tasks", lazy="joined")
    batch = relationship("Batch", lazy="joined")
    product = relationship("Product", lazy="joined")

    @property
    def difference(self) -> Optional[int]:
        """
        System minus physical, always derived from the stored counts.

        A residual row offsets the batch rows of the same count, so the
        differences of one count always add up to total system minus
        total physical.
        """
        if self.kind == OpnameKind.RESIDUAL:
            return -(self.residual_quantity or 0)
        if self.physical_stock is None:
            return None
        return (self.system_stock or 0) - self.physical_stock

    @property
    def is_direct(self) -> bool:
        return self.scheduled_date is None

    @property
    def is_residual(self) -> bool:
        return self.kind == OpnameKind.RESIDUAL

    def __repr__(self) -> str:
        return f"<OpnameTask id={self.id} batch_id={self.batch_id} status={self.status}>"
