# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
User accounts and password authentication.

Passwords are hashed with bcrypt (cost BCRYPT_ROUNDS, 12 in production).
Session tokens are managed separately (see session_service.py).
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Shop, User
from ..models.auth import VALID_ROLES
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import session_service


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long", {"password": "too short"})
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter", {"password": "needs a letter"})
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit", {"password": "needs a digit"})


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str = "salesperson",
    shop_id: int | None = None,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for a weak password or unknown role,
    ConflictError for a taken username/email, NotFoundError for a bad shop.
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValidationError("username is required", {"username": "required"})
    if not email:
        raise ValidationError("email is required", {"email": "required"})
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}", {"role": "invalid"})

    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise NotFoundError(f"Shop {shop_id} not found")

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f"Username '{username}' already exists")
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError(f"Email '{email}' already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        shop_id=shop_id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Check credentials by username or email.

    Returns the user on success (and stamps last_login_at), None otherwise.
    Inactive users never authenticate.
    """
    if not identifier or not password:
        return None

    ident = identifier.strip()
    user = db.session.query(User).filter(
        (User.username == ident) | (User.email == ident.lower())
    ).first()

    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def deactivate_user(user_id: int) -> tuple[User, int]:
    """
    Disable an account and revoke its live sessions.

    Returns (user, revoked_session_count). Deactivating twice is a 409.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    if not user.is_active:
        raise ConflictError(f"User {user.username} is already deactivated")

    user.is_active = False
    revoked = session_service.revoke_all_user_sessions(user.id, "Account deactivated")
    db.session.commit()
    return user, revoked
