from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from opnamedb.database import get_db
from opnamedb.security import get_current_active_user

from . import models, schemas, services

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=schemas.Token, summary="Login with email and password")
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    user = services.authenticate_user(db, login_req=payload)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password.",
        )
    token, expires_in = services.issue_access_token_for_user(user)
    return schemas.Token(access_token=token, expires_in=expires_in, user=schemas.UserRead.model_validate(user))


@router.get("/me", response_model=schemas.UserRead)
def read_me(current_user: models.User = Depends(get_current_active_user)):
    return current_user
