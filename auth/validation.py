"""
auth/validation.py -- Input rules for credentials.

Every rule runs before the store is touched. Each function returns the
normalized value or raises ValidationError listing every problem found.
"""

from __future__ import annotations

import re

from auth.errors import ValidationError
from auth.models import Role

EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def email_errors(email: object) -> list[str]:
    if not isinstance(email, str) or not email.strip():
        return ["email is required"]
    value = email.strip()
    if len(value) > EMAIL_MAX_LEN:
        return [f"email must not exceed {EMAIL_MAX_LEN} characters"]
    if not _EMAIL_RE.match(value):
        return ["email must be a valid email"]
    return []


def password_errors(password: object, field: str = "password") -> list[str]:
    if not isinstance(password, str) or password == "":
        return [f"{field} is required"]
    if len(password) < PASSWORD_MIN_LEN:
        return [f"{field} must be at least {PASSWORD_MIN_LEN} characters"]
    if len(password) > PASSWORD_MAX_LEN:
        return [f"{field} must not exceed {PASSWORD_MAX_LEN} characters"]
    if not (re.search(r"[a-z]", password) and re.search(r"[A-Z]", password) and re.search(r"[0-9]", password)):
        return [f"{field} must contain uppercase, lowercase, and numbers"]
    return []


def role_errors(role: object) -> list[str]:
    try:
        Role.parse(role)
    except ValueError as exc:
        return [str(exc)]
    return []


def validate_registration(email: object, password: object, role: object) -> tuple[str, str, Role]:
    """Return (normalized_email, password, role) or raise ValidationError."""
    errors = email_errors(email) + password_errors(password) + role_errors(role)
    if errors:
        raise ValidationError("Validation failed.", details=errors)
    return email.strip().lower(), password, Role.parse(role)


def validate_new_password(password: object) -> str:
    errors = password_errors(password, field="newPassword")
    if errors:
        raise ValidationError("Validation failed.", details=errors)
    return password
