from __future__ import annotations

import pytest

from registration.config import FormOptions
from registration.validation import (
    is_valid_email,
    name_length_error,
    normalize_fields,
    validate_form,
    validate_registration,
)

VALID = {"name": "Jordan", "gender": "other", "email": "jordan@example.com", "country": "CA"}


@pytest.mark.parametrize(
    "email",
    ["jordan@example.com", "a@b.co", "first.last+tag@sub.example.org"],
)
def test_accepts_well_formed_emails(email: str) -> None:
    assert is_valid_email(email)


@pytest.mark.parametrize(
    "email",
    ["jordan.example.com", "jordan@example", "jordan@", "@example.com", "jor dan@example.com", ""],
)
def test_rejects_malformed_emails(email: str) -> None:
    assert not is_valid_email(email)


def test_name_length_bounds() -> None:
    assert name_length_error("J") == "Name must be at least 2 characters long."
    assert name_length_error("Jo") is None
    assert name_length_error("x" * 100) is None
    assert name_length_error("x" * 101) == "Name must be less than 100 characters."


def test_normalize_trims_free_text_only() -> None:
    cleaned = normalize_fields({"name": " Jordan ", "gender": " other", "email": " a@b.co ", "country": 7})

    assert cleaned == {"name": "Jordan", "gender": " other", "email": "a@b.co", "country": ""}


def test_form_reports_first_missing_field() -> None:
    assert validate_form({"name": "", "gender": "", "email": "", "country": ""}) == "Please enter your full name."
    assert validate_form({**VALID, "gender": ""}) == "Please select your gender."
    assert validate_form({**VALID, "email": ""}) == "Please enter your email address."
    assert validate_form({**VALID, "country": ""}) == "Please select your country."


def test_form_checks_email_before_name_length() -> None:
    assert validate_form({**VALID, "name": "J", "email": "bad"}) == "Please enter a valid email address."
    assert validate_form({**VALID, "name": "J"}) == "Name must be at least 2 characters long."
    assert validate_form(VALID) is None


def test_form_does_not_check_option_membership() -> None:
    assert validate_form({**VALID, "country": "Atlantis"}) is None


def test_server_rules_reject_options_outside_the_configured_sets() -> None:
    options = FormOptions(genders=("female", "other"), countries=("CA",))

    assert validate_registration(VALID, options) is None
    assert validate_registration({**VALID, "gender": "male"}, options) == "Please select a valid gender."
    assert validate_registration({**VALID, "country": "US"}, options) == "Please select a valid country."
    assert validate_registration({**VALID, "email": ""}, options) == "All fields are required."
    assert validate_registration({**VALID, "name": "x" * 101}, options) == "Name must be less than 100 characters."
