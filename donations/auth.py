"""Credential checks and session state transitions for administrators."""

from __future__ import annotations

from typing import MutableMapping, Optional

from .database import Database
from .models import User

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."


class InvalidCredentials(Exception):
    """Raised for an unknown username or a wrong password alike."""

    def __init__(self, message: str = INVALID_CREDENTIALS_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


def authenticate(database: Database, username: str, password: str) -> User:
    """Return the matching user or raise :class:`InvalidCredentials`."""

    user = database.verify_user_password(username, password)
    if user is None:
        raise InvalidCredentials()
    return user


def login_session(session: MutableMapping[str, object], user: User) -> None:
    session.clear()
    session["user_id"] = user.id
    session["username"] = user.username


def logout_session(session: MutableMapping[str, object]) -> None:
    session.clear()


def session_user_id(session: MutableMapping[str, object]) -> Optional[int]:
    raw = session.get("user_id")
    if raw is None:
        return None
    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def is_authenticated(session: MutableMapping[str, object]) -> bool:
    return session_user_id(session) is not None


__all__ = [
    "INVALID_CREDENTIALS_MESSAGE",
    "InvalidCredentials",
    "authenticate",
    "is_authenticated",
    "login_session",
    "logout_session",
    "session_user_id",
]
