from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from venusdb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_password_hash,
    verify_password,
)
from . import models, schemas

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthenticationError(Exception):
    """Raised when login credentials are invalid."""


class DuplicateEmailError(Exception):
    """Raised when signing up with an email that already has an account."""


def _normalise_email(value: str) -> str:
    return value.strip().lower()


# ---------------------------------------------------------------------------
# User lookups
# ---------------------------------------------------------------------------


def get_user_by_id(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.email == _normalise_email(email))
        .first()
    )


# ---------------------------------------------------------------------------
# Signup / login
# ---------------------------------------------------------------------------


def create_user(db: Session, *, email: str, password: str) -> models.User:
    email = _normalise_email(email)
    if get_user_by_email(db, email):
        raise DuplicateEmailError("User with this email already exists")

    user = models.User(
        email=email,
        hashed_password=get_password_hash(password),
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # lost a race against a concurrent signup for the same email
        db.rollback()
        raise DuplicateEmailError("User with this email already exists") from exc
    db.refresh(user)
    logger.info("User signed up", extra={"user_id": user.id})
    return user


def signup(db: Session, *, payload: schemas.SignupRequest) -> Tuple[models.User, str, int]:
    """Create the account and return it with a fresh access token."""
    user = create_user(db, email=payload.email, password=payload.password)
    token, expires_in = issue_access_token_for_user(user)
    return user, token, expires_in


def authenticate_user(db: Session, *, email: str, password: str) -> models.User:
    """
    Password login by email.

    Unknown email and wrong password raise the same error so the response
    does not reveal which accounts exist.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        logger.warning("Login failed", extra={"email": _normalise_email(email)})
        raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)
    if not user.is_active:
        logger.warning("Login by inactive user", extra={"user_id": user.id})
        raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    """
    Create a JWT access token for the user.

    Returns (token_string, expires_in_seconds).
    """
    expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": str(user.id),
        "email": user.email,
    }
    access_token = create_access_token(data=payload, expires_delta=expires_delta)
    return access_token, int(ACCESS_TOKEN_EXPIRE_MINUTES * 60)
