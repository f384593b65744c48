# backend/opnamedb/apps/accounts/services.py

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from opnamedb.errors import Conflict, NotFound
from opnamedb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_password_hash,
    verify_password,
)

from . import models, schemas

logger = logging.getLogger(__name__)


def _normalise_email(value: str) -> str:
    return (value or "").strip().lower()


def get_user(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound("User not found.", user_id=user_id)
    return user


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == _normalise_email(email)).first()


def create_user(db: Session, data: schemas.UserCreate) -> models.User:
    email = _normalise_email(data.email)
    if get_user_by_email(db, email):
        raise Conflict("A user with this email already exists.", email=email)

    user = models.User(
        email=email,
        full_name=data.full_name.strip(),
        role=data.role,
        is_active=True,
        hashed_password=get_password_hash(data.password),
    )
    db.add(user)
    db.flush()
    return user


def authenticate_user(db: Session, *, login_req: schemas.LoginRequest) -> Optional[models.User]:
    """
    Password login by email. Returns None on any failure so the caller can
    answer with a single generic 401.
    """
    user = get_user_by_email(db, login_req.email)
    if not user or not user.is_active:
        logger.info("Login rejected", extra={"email": _normalise_email(login_req.email)})
        return None
    if not verify_password(login_req.password, user.hashed_password):
        logger.info("Login rejected", extra={"user_id": user.id})
        return None
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """
    Create a JWT access token for the user.

    Returns (token_string, expires_in_seconds).
    """
    expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user.id),
        "role": user.role.value if hasattr(user.role, "value") else str(user.role),
    }
    token = create_access_token(data=payload, expires_delta=expires_delta)
    return token, int(expires_delta.total_seconds())
