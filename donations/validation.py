"""Decoding and validation of donation submissions.

Both the HTML form and the JSON API produce a :class:`DonationSubmission`; the
rest of the request path only ever sees that command.
"""

from __future__ import annotations

import json
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

MAX_NAME_LENGTH = 255
MAX_BANK_INFO_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000

_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


class InvalidPayload(ValueError):
    """Raised when a JSON request body cannot be decoded."""


class DonationSubmission(BaseModel):
    """A donation as submitted by a visitor, before validation."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = ""
    bank_info: str = ""
    amount: str = ""
    description: str = ""

    @field_validator("name", "bank_info", "amount", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else ""
        return str(value).strip()

    @property
    def description_or_none(self) -> Optional[str]:
        return self.description or None


def submission_from_form(form: Mapping[str, Any]) -> DonationSubmission:
    """Build a submission from form-encoded fields."""
    return DonationSubmission.model_validate(
        {field: form.get(field) for field in ("name", "bank_info", "amount", "description")}
    )


def submission_from_json(raw_body: bytes | str) -> DonationSubmission:
    """Build a submission from a JSON request body.

    A syntactically valid document that is not an object yields an empty
    submission, which then fails validation like any other incomplete input.
    """
    try:
        payload = json.loads(raw_body)
    except (TypeError, ValueError) as exc:
        raise InvalidPayload("Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        payload = {}
    return DonationSubmission.model_validate(payload)


def is_api_request(content_type: Optional[str]) -> bool:
    """Return ``True`` when the request body should be treated as JSON."""
    return "application/json" in (content_type or "").lower()


def parse_amount(text: str) -> Decimal:
    """Parse a plain decimal number, raising ``ValueError`` for anything else."""
    cleaned = text.strip()
    if not _NUMBER_PATTERN.match(cleaned):
        raise ValueError(f"Not a number: {text!r}")
    try:
        return Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {text!r}") from exc


def validate_donation(submission: DonationSubmission) -> Dict[str, str]:
    """Return a mapping of field name to error message; empty means valid."""

    errors: Dict[str, str] = {}

    if not submission.name:
        errors["name"] = "Name is required."
    elif len(submission.name) > MAX_NAME_LENGTH:
        errors["name"] = f"Name must not exceed {MAX_NAME_LENGTH} characters."

    if not submission.bank_info:
        errors["bank_info"] = "Bank Information is required."
    elif len(submission.bank_info) > MAX_BANK_INFO_LENGTH:
        errors["bank_info"] = f"Bank Information must not exceed {MAX_BANK_INFO_LENGTH} characters."

    if not submission.amount:
        errors["amount"] = "Amount is required."
    else:
        try:
            amount = parse_amount(submission.amount)
        except ValueError:
            amount = None
        if amount is None or not math.isfinite(float(amount)) or float(amount) <= 0:
            errors["amount"] = "Amount must be a positive number."

    if submission.description and len(submission.description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters."

    return errors


__all__ = [
    "DonationSubmission",
    "InvalidPayload",
    "MAX_BANK_INFO_LENGTH",
    "MAX_DESCRIPTION_LENGTH",
    "MAX_NAME_LENGTH",
    "is_api_request",
    "parse_amount",
    "submission_from_form",
    "submission_from_json",
    "validate_donation",
]
