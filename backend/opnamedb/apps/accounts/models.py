# backend/opnamedb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, String
from sqlalchemy.orm import relationship

from opnamedb.database import Base
from opnamedb.utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountRole(str, enum.Enum):
    """Roles understood by the opname workflow.

    Staff count stock on the floor; admins schedule counts, review them and
    are the only ones allowed to write counted figures back into batches.
    """

    STAFF = "staff"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (Index("idx_users_role_active", "role", "is_active"),)

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)

    role = Column(
        Enum(AccountRole, name="account_role_enum", native_enum=False),
        nullable=False,
        default=AccountRole.STAFF,
        index=True,
    )

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    hashed_password = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    opname_tasks = relationship(
        "OpnameTask",
        back_populates="user",
        foreign_keys="OpnameTask.user_id",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
