"""Validation rules shared by the registration form and the HTTP service."""

from __future__ import annotations

import re
from typing import Dict, Mapping, Optional

from .config import FormOptions

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100

FIELDS = ("name", "gender", "email", "country")

MISSING_NAME = "Please enter your full name."
MISSING_GENDER = "Please select your gender."
MISSING_EMAIL = "Please enter your email address."
MISSING_COUNTRY = "Please select your country."
MISSING_FIELDS = "All fields are required."
INVALID_EMAIL = "Please enter a valid email address."
NAME_TOO_SHORT = "Name must be at least 2 characters long."
NAME_TOO_LONG = "Name must be less than 100 characters."
INVALID_GENDER = "Please select a valid gender."
INVALID_COUNTRY = "Please select a valid country."


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def name_length_error(name: str) -> Optional[str]:
    """Return the message for a name outside the accepted length bounds."""

    if len(name) < NAME_MIN_LENGTH:
        return NAME_TOO_SHORT
    if len(name) > NAME_MAX_LENGTH:
        return NAME_TOO_LONG
    return None


def normalize_fields(raw: Mapping[str, object]) -> Dict[str, str]:
    """Return the four form fields as strings, trimming the free-text ones.

    Values that are missing or not strings are treated as empty.
    """

    cleaned: Dict[str, str] = {}
    for field in FIELDS:
        value = raw.get(field)
        text = value if isinstance(value, str) else ""
        if field in ("name", "email"):
            text = text.strip()
        cleaned[field] = text
    return cleaned


def validate_form(fields: Mapping[str, str]) -> Optional[str]:
    """Validate form input before it is sent, returning the first violated rule.

    The order of the checks determines which message the user sees when
    several fields are wrong at once.
    """

    if not fields.get("name"):
        return MISSING_NAME
    if not fields.get("gender"):
        return MISSING_GENDER
    if not fields.get("email"):
        return MISSING_EMAIL
    if not fields.get("country"):
        return MISSING_COUNTRY
    if not is_valid_email(fields["email"]):
        return INVALID_EMAIL
    return name_length_error(fields["name"])


def validate_registration(fields: Mapping[str, str], options: FormOptions) -> Optional[str]:
    """Validate a registration received by the service.

    The service does not rely on the form having run :func:`validate_form`
    and additionally checks the option sets.
    """

    if not all(fields.get(field) for field in FIELDS):
        return MISSING_FIELDS
    if not is_valid_email(fields["email"]):
        return INVALID_EMAIL
    length_error = name_length_error(fields["name"])
    if length_error is not None:
        return length_error
    if fields["gender"] not in options.genders:
        return INVALID_GENDER
    if fields["country"] not in options.countries:
        return INVALID_COUNTRY
    return None


__all__ = [
    "EMAIL_PATTERN",
    "FIELDS",
    "NAME_MAX_LENGTH",
    "NAME_MIN_LENGTH",
    "is_valid_email",
    "name_length_error",
    "normalize_fields",
    "validate_form",
    "validate_registration",
]
