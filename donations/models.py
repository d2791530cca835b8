"""Domain models for the donation desk."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Donation:
    """A pledge recorded through the public donation form."""

    id: int
    name: str
    bank_info: str
    amount: float
    description: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class User:
    """An administrator account able to view recorded donations."""

    id: int
    username: str
    created_at: datetime


__all__ = ["Donation", "User"]
