"""
Per-step wizard validation.

Each `clean_stepN(form)` takes a raw mapping (request.form or the autosave JSON
body) and returns `(data, errors)`: normalized values keyed by model column,
and `{field: message}` for anything that failed. Field names in `errors` match
the form input names used by the templates.
"""
from __future__ import annotations

import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

NAME_RE = re.compile(r"^[a-zA-Z\s-]+$")
PHONE_RE = re.compile(r"^(\+63|0)?9\d{9}$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)+$")

ALLOWED_TERMS = (6, 12, 24, 36, 48, 60)
MIN_LOAN_AMOUNT = Decimal("10000")
MAX_LOAN_AMOUNT = Decimal("5000000")

TRUTHY = ("1", "true", "on", "yes")


def _str(form: Mapping[str, Any], key: str) -> str:
    v = form.get(key)
    if v is None:
        return ""
    return str(v).strip()


def _check_name(value: str, label: str, *, required: bool) -> str | None:
    if not value:
        return f"{label} must be at least 2 characters" if required else None
    if required and len(value) < 2:
        return f"{label} must be at least 2 characters"
    if len(value) > 100:
        return f"{label} must not exceed 100 characters"
    if not NAME_RE.match(value):
        return f"{label} can only contain letters, spaces, and hyphens"
    return None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError):
        return False
    return True


def clean_step1(form: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
    errors: dict[str, str] = {}
    first = _str(form, "borrower_first_name")
    middle = _str(form, "borrower_middle_name")
    last = _str(form, "borrower_last_name")
    email = _str(form, "borrower_email").lower()
    phone = _str(form, "borrower_phone")

    for field, value, label, required in (
        ("borrower_first_name", first, "First name", True),
        ("borrower_middle_name", middle, "Middle name", False),
        ("borrower_last_name", last, "Last name", True),
    ):
        msg = _check_name(value, label, required=required)
        if msg:
            errors[field] = msg

    if not email or not EMAIL_RE.match(email):
        errors["borrower_email"] = "Please enter a valid email address"
    elif len(email) > 255:
        errors["borrower_email"] = "Email must not exceed 255 characters"

    if not PHONE_RE.match(phone):
        errors["borrower_phone"] = "Please enter a valid Philippine phone number (e.g., 09123456789)"

    data = {
        "borrower_first_name": first,
        "borrower_middle_name": middle or None,
        "borrower_last_name": last,
        "borrower_email": email,
        "borrower_phone": phone,
    }
    return data, errors


def clean_step2(form: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
    errors: dict[str, str] = {}
    region_id = _str(form, "region_id")
    province_id = _str(form, "province_id")
    city_id = _str(form, "city_id")
    address = _str(form, "borrower_address")

    if not _is_uuid(region_id):
        errors["region_id"] = "Please select a valid region"
    if not _is_uuid(province_id):
        errors["province_id"] = "Please select a valid province"
    if not _is_uuid(city_id):
        errors["city_id"] = "Please select a valid city/municipality"

    if len(address) < 10:
        errors["borrower_address"] = "Address must be at least 10 characters"
    elif len(address) > 500:
        errors["borrower_address"] = "Address must not exceed 500 characters"

    data = {
        "region_id": region_id,
        "province_id": province_id,
        "city_id": city_id,
        "borrower_address": address,
    }
    return data, errors


def parse_amount(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    text = str(raw).replace(",", "").strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_term(raw: Any) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def clean_step3(form: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
    errors: dict[str, str] = {}
    raw_amount = form.get("loan_amount")
    amount = parse_amount(raw_amount)
    purpose = _str(form, "loan_purpose")
    raw_term = form.get("loan_term_months")
    term = parse_term(raw_term)

    if raw_amount is None or str(raw_amount).strip() == "":
        errors["loan_amount"] = "Loan amount is required"
    elif amount is None:
        errors["loan_amount"] = "Loan amount must be a number"
    elif amount < MIN_LOAN_AMOUNT:
        errors["loan_amount"] = "Minimum loan amount is ₱10,000"
    elif amount > MAX_LOAN_AMOUNT:
        errors["loan_amount"] = "Maximum loan amount is ₱5,000,000"

    if len(purpose) < 20:
        errors["loan_purpose"] = "Please provide at least 20 characters describing the loan purpose"
    elif len(purpose) > 1000:
        errors["loan_purpose"] = "Loan purpose must not exceed 1000 characters"

    if raw_term is None or str(raw_term).strip() == "":
        errors["loan_term_months"] = "Loan term is required"
    elif term is None:
        errors["loan_term_months"] = "Loan term must be a number"
    elif term not in ALLOWED_TERMS:
        errors["loan_term_months"] = "Please select a valid loan term"

    data = {
        "loan_amount": amount,
        "loan_purpose": purpose,
        "loan_term_months": term,
    }
    return data, errors


def clean_step4(form: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
    raw = form.get("terms_accepted")
    accepted = raw is True or str(raw or "").strip().lower() in TRUTHY
    errors: dict[str, str] = {}
    if not accepted:
        errors["terms_accepted"] = "You must accept the terms and conditions to proceed"
    return {"terms_accepted": accepted}, errors


CLEANERS = {
    1: clean_step1,
    2: clean_step2,
    3: clean_step3,
    4: clean_step4,
}
