from __future__ import annotations

import pytest

from donations.validation import (
    DonationSubmission,
    InvalidPayload,
    is_api_request,
    submission_from_form,
    submission_from_json,
    validate_donation,
)


def _submission(**overrides: object) -> DonationSubmission:
    data = {"name": "Ann", "bank_info": "IBAN123", "amount": "50", "description": ""}
    data.update(overrides)
    return DonationSubmission.model_validate(data)


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"amount": "0.01"},
        {"amount": "1e3"},
        {"amount": 25},
        {"amount": 12.5},
        {"description": None},
        {"description": "x" * 1000},
        {"name": "n" * 255, "bank_info": "b" * 255},
    ],
)
def test_valid_donations_have_no_errors(overrides) -> None:
    assert validate_donation(_submission(**overrides)) == {}


@pytest.mark.parametrize("amount", ["0", "-5", "", "abc", "inf", "nan", "1_000", "0x10", "1e999999", "1e-400"])
def test_bad_amounts_are_flagged(amount: str) -> None:
    errors = validate_donation(_submission(amount=amount))
    assert "amount" in errors
    assert set(errors) == {"amount"}


def test_missing_amount_reports_required() -> None:
    assert validate_donation(_submission(amount="")) == {"amount": "Amount is required."}
    assert validate_donation(_submission(amount="-5")) == {"amount": "Amount must be a positive number."}


def test_every_field_is_checked_independently() -> None:
    errors = validate_donation(
        DonationSubmission.model_validate({"name": "", "bank_info": "", "amount": "", "description": "d" * 1001})
    )
    assert errors == {
        "name": "Name is required.",
        "bank_info": "Bank Information is required.",
        "amount": "Amount is required.",
        "description": "Description must not exceed 1000 characters.",
    }


def test_length_limits_count_characters_not_bytes() -> None:
    # 255 multi-byte characters are well over 255 bytes but still allowed.
    assert validate_donation(_submission(name="é" * 255, bank_info="€" * 255)) == {}

    errors = validate_donation(_submission(name="é" * 256, bank_info="€" * 256))
    assert errors == {
        "name": "Name must not exceed 255 characters.",
        "bank_info": "Bank Information must not exceed 255 characters.",
    }


def test_form_decoder_strips_whitespace() -> None:
    submission = submission_from_form(
        {"name": "  Ann ", "bank_info": " IBAN ", "amount": " 10 ", "description": "   "}
    )
    assert submission.name == "Ann"
    assert submission.bank_info == "IBAN"
    assert submission.amount == "10"
    assert submission.description_or_none is None


def test_json_decoder_accepts_numbers_and_ignores_extra_fields() -> None:
    submission = submission_from_json(b'{"name": "Ann", "bank_info": "IBAN", "amount": 50, "currency": "EUR"}')
    assert submission.amount == "50"
    assert submission.description == ""
    assert validate_donation(submission) == {}


def test_json_decoder_rejects_malformed_payload() -> None:
    with pytest.raises(InvalidPayload):
        submission_from_json(b"{not json")
    with pytest.raises(InvalidPayload):
        submission_from_json(b"")


def test_json_decoder_treats_non_objects_as_empty() -> None:
    submission = submission_from_json(b"[1, 2, 3]")
    assert set(validate_donation(submission)) == {"name", "bank_info", "amount"}


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("application/json", True),
        ("Application/JSON; charset=utf-8", True),
        ("application/x-www-form-urlencoded", False),
        ("", False),
        (None, False),
    ],
)
def test_is_api_request(content_type, expected) -> None:
    assert is_api_request(content_type) is expected
