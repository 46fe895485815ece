from decimal import Decimal

import pytest

from app.lending.modules.applications.validation import (
    clean_step1,
    clean_step2,
    clean_step3,
    clean_step4,
    parse_amount,
    parse_term,
)
from conftest import STEP1, STEP3


def test_step1_valid_normalizes():
    data, errors = clean_step1({**STEP1, "borrower_email": " Maria@Example.COM ", "borrower_middle_name": ""})
    assert errors == {}
    assert data["borrower_email"] == "maria@example.com"
    assert data["borrower_middle_name"] is None
    assert data["borrower_last_name"] == "Dela-Cruz"


def test_step1_messages():
    _, errors = clean_step1(
        {
            "borrower_first_name": "M",
            "borrower_middle_name": "J4",
            "borrower_last_name": "",
            "borrower_email": "not-an-email",
            "borrower_phone": "12345",
        }
    )
    assert errors == {
        "borrower_first_name": "First name must be at least 2 characters",
        "borrower_middle_name": "Middle name can only contain letters, spaces, and hyphens",
        "borrower_last_name": "Last name must be at least 2 characters",
        "borrower_email": "Please enter a valid email address",
        "borrower_phone": "Please enter a valid Philippine phone number (e.g., 09123456789)",
    }


@pytest.mark.parametrize("phone", ["09171234567", "+639171234567", "9171234567"])
def test_step1_accepts_philippine_mobile_formats(phone):
    _, errors = clean_step1({**STEP1, "borrower_phone": phone})
    assert "borrower_phone" not in errors


def test_step1_name_length_cap():
    _, errors = clean_step1({**STEP1, "borrower_first_name": "A" * 101})
    assert errors["borrower_first_name"] == "First name must not exceed 100 characters"


def test_step2_requires_uuid_ids_and_address():
    _, errors = clean_step2({"region_id": "13", "province_id": "", "city_id": None, "borrower_address": "short"})
    assert errors == {
        "region_id": "Please select a valid region",
        "province_id": "Please select a valid province",
        "city_id": "Please select a valid city/municipality",
        "borrower_address": "Address must be at least 10 characters",
    }


def test_step3_valid_coerces_types():
    data, errors = clean_step3({**STEP3, "loan_amount": "1,250,000.50"})
    assert errors == {}
    assert data["loan_amount"] == Decimal("1250000.50")
    assert data["loan_term_months"] == 12


@pytest.mark.parametrize(
    "amount, message",
    [
        ("", "Loan amount is required"),
        ("abc", "Loan amount must be a number"),
        ("9999.99", "Minimum loan amount is ₱10,000"),
        ("5000000.01", "Maximum loan amount is ₱5,000,000"),
    ],
)
def test_step3_amount_bounds(amount, message):
    _, errors = clean_step3({**STEP3, "loan_amount": amount})
    assert errors["loan_amount"] == message


def test_step3_amount_limits_are_inclusive():
    for amount in ("10000", "5000000"):
        _, errors = clean_step3({**STEP3, "loan_amount": amount})
        assert "loan_amount" not in errors


def test_step3_purpose_and_term():
    _, errors = clean_step3({"loan_amount": "20000", "loan_purpose": "too short", "loan_term_months": "18"})
    assert errors["loan_purpose"] == "Please provide at least 20 characters describing the loan purpose"
    assert errors["loan_term_months"] == "Please select a valid loan term"

    _, errors = clean_step3({"loan_amount": "20000", "loan_purpose": "x" * 20})
    assert errors["loan_term_months"] == "Loan term is required"


@pytest.mark.parametrize("raw", ["on", "1", "true", "YES", True])
def test_step4_accepts_truthy(raw):
    data, errors = clean_step4({"terms_accepted": raw})
    assert errors == {}
    assert data["terms_accepted"] is True


@pytest.mark.parametrize("raw", [None, "", "0", "false", False])
def test_step4_requires_acceptance(raw):
    _, errors = clean_step4({"terms_accepted": raw})
    assert errors["terms_accepted"] == "You must accept the terms and conditions to proceed"


def test_parsers():
    assert parse_amount(None) is None
    assert parse_amount("NaN") is None
    assert parse_amount(" 12,000 ") == Decimal("12000")
    assert parse_term("24") == 24
    assert parse_term("x") is None
    assert parse_term("") is None
