# Overview: Service-layer operations for accounts and credentials.

"""
Authentication Service

WHY: Every ledger operation needs a caller identity. Accounts carry a role
(client, lady, club, admin) and a bcrypt password hash.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Profile, User
from ..models.auth import ROLE_CLIENT, ROLE_CLUB, ROLE_LADY, VALID_ROLES
from giftledger.time_utils import utcnow
from .errors import ConflictError, ValidationError


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate and hash a password with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_CLIENT,
    profile_name: str | None = None,
) -> User:
    """
    Create an account; lady and club accounts also get their directory profile.

    Args:
        username: Unique login name
        email: Unique email
        password: Password meeting strength requirements
        role: client, lady, club or admin
        profile_name: Public profile name (lady/club only, defaults to username)

    Raises:
        ValidationError: Malformed username/email/role, weak password
        ConflictError: Username, email or profile name already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()

    if not USERNAME_PATTERN.match(username):
        raise ValidationError("Username must be 3-64 letters, digits, '.', '_' or '-'")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email address is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {list(VALID_ROLES)}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    password_hash = hash_password(password)

    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
        role=role,
        is_active=True,
        credits=0,
        created_at=utcnow(),
    )
    db.session.add(user)

    try:
        db.session.flush()
        if role in (ROLE_LADY, ROLE_CLUB):
            db.session.add(Profile(
                user_id=user.id,
                name=(profile_name or username).strip(),
                kind=role,
                is_active=True,
                created_at=utcnow(),
            ))
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Username, email or profile name already exists") from exc

    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User and stamps last_login_at when credentials are valid,
    None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
