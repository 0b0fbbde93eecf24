# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and User Account Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_LOG_ROUNDS, 12 by default)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Tokens managed separately (see session_service.py)
- Inactive users cannot authenticate
"""

import bcrypt
import re
from flask import current_app

from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User, ROLES
from .concurrency import atomic
from matmx.time_utils import utcnow


USER_MUTABLE_FIELDS = {"name", "email", "role"}


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
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
    """
    Hash password using bcrypt.

    WHY: Cost factor 12 provides good security/performance balance.
    Tests lower BCRYPT_LOG_ROUNDS to keep fixtures fast.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("email is required")
    normalized = email.strip().lower()
    if "@" not in normalized:
        raise ValidationError("email is not valid")
    return normalized


def _validate_role(role) -> str:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def _require_email_free(email: str, exclude_user_id: int | None = None) -> None:
    q = db.session.query(User).filter(User.email == email)
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    if q.first() is not None:
        raise ConflictError("Email already in use")


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(name: str, email: str, password: str, role: str) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing name, bad email, unknown role, weak password
        ConflictError: email already taken
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    email = normalize_email(email)
    _validate_role(role)
    password_hash = hash_password(password)

    with atomic():
        _require_email_free(email)
        user = User(
            name=name.strip(),
            email=email,
            password_hash=password_hash,
            role=role,
            is_active=True,
        )
        db.session.add(user)

    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user by email and password.

    Returns User if the credentials match, None otherwise.
    Raises PermissionDeniedError for a deactivated account (correct password only,
    so account state is not revealed to guessers).

    Updates last_login_at on success.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return None

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        raise PermissionDeniedError("Account is deactivated")

    with atomic():
        user.last_login_at = utcnow()

    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()


def list_users_by_role(role: str) -> list[User]:
    _validate_role(role)
    return (
        db.session.query(User)
        .filter(User.role == role, User.is_active.is_(True))
        .order_by(User.name.asc(), User.id.asc())
        .all()
    )


def update_user(user_id: int, patch: dict) -> User:
    """Update name/email/role. Password and active flag have their own operations."""
    unknown = set(patch) - USER_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    user = get_user(user_id)
    changes = {}
    if "name" in patch:
        if not isinstance(patch["name"], str) or not patch["name"].strip():
            raise ValidationError("name cannot be blank")
        changes["name"] = patch["name"].strip()
    if "email" in patch:
        changes["email"] = normalize_email(patch["email"])
    if "role" in patch:
        changes["role"] = _validate_role(patch["role"])

    with atomic():
        if "email" in changes:
            _require_email_free(changes["email"], exclude_user_id=user.id)
        for k, v in changes.items():
            setattr(user, k, v)

    return user


def set_user_active(user_id: int, active: bool, actor: User) -> User:
    user = get_user(user_id)
    if not active and user.id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    with atomic():
        user.is_active = bool(active)
    return user


def reset_password(user_id: int, new_password: str) -> User:
    user = get_user(user_id)
    password_hash = hash_password(new_password)
    with atomic():
        user.password_hash = password_hash
    return user


def delete_user(user_id: int, actor: User) -> None:
    """
    Hard delete. Users still referenced by customers, tasks, quotes or logs
    cannot be deleted (ConflictError); deactivate them instead.
    """
    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")
    try:
        with atomic():
            db.session.delete(user)
    except ConflictError:
        raise ConflictError("User is referenced by other records; deactivate the account instead")
