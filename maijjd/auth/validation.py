"""
Maijjd - Input Validation

Contact identifier normalization and password policy. Every rule yields
a field-specific message so a ValidationError can list all failures.
"""

import re
from typing import Dict, List, Optional

from maijjd.errors import ValidationError


MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt input limit
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(
    r"^(\+?1[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})$|^\+?[1-9]\d{1,14}$"
)
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")

FieldErrors = List[Dict[str, str]]


def field_error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(phone: str) -> str:
    """
    Reduce a phone number to E.164 so every spelling of one number collides.

    Numbers without a leading "+" are read as North American when they
    have 10 digits (or 11 starting with 1); any other bare digit string
    is taken to already carry its country code.
    """
    digits = _PHONE_SEPARATORS.sub("", phone.strip())
    if digits.startswith("+"):
        return digits
    if len(digits) == 10:
        return "+1" + digits
    return "+" + digits


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email.strip()))


def is_valid_phone(phone: str) -> bool:
    phone = phone.strip()
    digits = _PHONE_SEPARATORS.sub("", phone).lstrip("+")
    return len(digits) >= 10 and bool(PHONE_RE.match(phone))


def contact_errors(email: Optional[str], phone: Optional[str]) -> FieldErrors:
    """At least one identifier, each well-formed when present."""
    errors: FieldErrors = []
    if not email and not phone:
        errors.append(field_error("email", "Either email or phone number is required"))
        return errors
    if email and not is_valid_email(email):
        errors.append(field_error("email", "Please enter a valid email address"))
    if phone and not is_valid_phone(phone):
        errors.append(field_error(
            "phone",
            "Please enter a valid phone number (e.g., +1234567890 or (123) 456-7890)",
        ))
    return errors


def name_errors(name: Optional[str]) -> FieldErrors:
    name = (name or "").strip()
    if len(name) < MIN_NAME_LENGTH or len(name) > MAX_NAME_LENGTH:
        return [field_error(
            "name",
            f"Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters",
        )]
    return []


def password_errors(
    password: Optional[str],
    confirm_password: Optional[str] = None,
    *,
    require_confirmation: bool = True,
) -> FieldErrors:
    """
    Apply the password policy.

    Rules: length >= 8 and at most 72 UTF-8 bytes, one uppercase, one
    lowercase, one digit, one special (non-alphanumeric, non-space)
    character, and the confirmation must match. When
    require_confirmation is False the confirmation is only checked if
    supplied.
    """
    errors: FieldErrors = []
    password = password or ""

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(field_error(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        ))
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(field_error(
            "password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"
        ))
    if not any(c.isupper() for c in password):
        errors.append(field_error("password", "Password must contain at least one uppercase letter"))
    if not any(c.islower() for c in password):
        errors.append(field_error("password", "Password must contain at least one lowercase letter"))
    if not any(c.isdigit() for c in password):
        errors.append(field_error("password", "Password must contain at least one number"))
    if not any(not c.isalnum() and not c.isspace() for c in password):
        errors.append(field_error("password", "Password must contain at least one special character"))

    if confirm_password is None:
        if require_confirmation:
            errors.append(field_error("confirmPassword", "Password confirmation is required"))
    elif password != confirm_password:
        errors.append(field_error("confirmPassword", "Password confirmation does not match password"))

    return errors


def raise_for_errors(errors: FieldErrors) -> None:
    """Raise a ValidationError listing every failure, led by the first."""
    if errors:
        raise ValidationError(errors[0]["message"], details=errors)
