# Overview: Password hashing and credential checks for operator accounts.

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12). Session tokens are
handled separately (see session_service.py).
"""

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_EMPLOYEE
from ..time_utils import utcnow

MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValueError):
    """Raised when a password doesn't meet the length requirement."""


def hash_password(password: str, *, rounds: int = 12) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    *,
    role: str = ROLE_EMPLOYEE,
    permissions: dict | None = None,
    rounds: int = 12,
) -> User:
    """
    Create an operator account.

    Raises ValueError if the username is taken or the role is unknown,
    PasswordValidationError if the password is too short.
    """
    if role not in (ROLE_ADMIN, ROLE_EMPLOYEE):
        raise ValueError(f"Unknown role {role}")

    username = (username or "").strip()
    if not username:
        raise ValueError("username is required")

    if db.session.query(User).filter_by(username=username).first():
        raise ValueError("Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
        permissions=dict(permissions or {}),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the active User whose credentials match, else None.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
