"""SQLite-backed persistence for donations and administrator accounts."""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from passlib.context import CryptContext

from .models import Donation, User
from .validation import DonationSubmission, parse_amount

logger = logging.getLogger("donations.database")


class StoreError(RuntimeError):
    """Raised when the backing store rejects or cannot serve a request."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "donations.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


# New hashes use PBKDF2; bcrypt hashes written by earlier deployments still verify.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


class Database:
    """Simple wrapper around SQLite for persisting donations and users."""

    def __init__(self, path: Path, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._path = Path(path)
        self._clock = clock or _current_timestamp

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open database at {self._path}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the database file and required tables if they do not already exist."""

        try:
            _ensure_directory(self._path)
        except OSError as exc:
            raise StoreError(f"Failed to create database directory for {self._path}") from exc

        try:
            with self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS donations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        bank_info TEXT NOT NULL,
                        amount REAL NOT NULL CHECK(amount > 0),
                        description TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        username TEXT NOT NULL UNIQUE,
                        password TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_donations_created_at ON donations(created_at);
                    """
                )
        except sqlite3.DatabaseError as exc:
            raise StoreError(f"Failed to initialise database at {self._path}") from exc
        logger.debug("Database schema ready at %s", self._path)

    # ------------------------------------------------------------------
    # Donations
    # ------------------------------------------------------------------
    def insert_donation(self, submission: DonationSubmission) -> Donation:
        """Persist a validated donation and return the stored record."""

        created_at = self._clock()
        try:
            amount = float(parse_amount(submission.amount))
        except ValueError as exc:
            raise StoreError("Donation amount is not a number") from exc
        description = submission.description_or_none

        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO donations (name, bank_info, amount, description, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        submission.name,
                        submission.bank_info,
                        amount,
                        description,
                        _serialize_datetime(created_at),
                    ),
                )
                donation_id = cursor.lastrowid
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to save donation") from exc

        return Donation(
            id=int(donation_id),
            name=submission.name,
            bank_info=submission.bank_info,
            amount=amount,
            description=description,
            created_at=created_at,
        )

    def list_donations_by_recency(self) -> List[Donation]:
        """Return every donation, newest first; equal timestamps keep arrival order."""

        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM donations ORDER BY created_at DESC, id ASC"
                ).fetchall()
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to fetch donations") from exc
        return [self._row_to_donation(row) for row in rows]

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, username: str, password: str) -> User:
        """Create an administrator account. Used by provisioning tools only."""

        normalized = username.strip()
        if not normalized:
            raise ValueError("Username must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        created_at = self._clock()
        password_hash = hash_password(password)

        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "INSERT INTO users (username, password, created_at) VALUES (?, ?, ?)",
                    (normalized, password_hash, _serialize_datetime(created_at)),
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"A user named '{normalized}' already exists") from exc
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to create user") from exc

        return User(id=int(user_id), username=normalized, created_at=created_at)

    def get_user(self, user_id: int) -> Optional[User]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to load user") from exc
        if row is None:
            return None
        return self._row_to_user(row)

    def find_user_by_username(self, username: str) -> Optional[User]:
        row = self._fetch_user_row(username)
        if row is None:
            return None
        return self._row_to_user(row)

    def verify_user_password(self, username: str, password: str) -> Optional[User]:
        """Return the user when ``password`` matches the stored hash."""

        row = self._fetch_user_row(username)
        if row is None:
            return None
        stored_hash = row["password"]
        if not stored_hash or not verify_password(password, str(stored_hash)):
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to list users") from exc
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _fetch_user_row(self, username: str) -> Optional[sqlite3.Row]:
        try:
            with self._connect() as conn:
                return conn.execute(
                    "SELECT * FROM users WHERE username = ?",
                    (username,),
                ).fetchone()
        except sqlite3.DatabaseError as exc:
            raise StoreError("Failed to look up user") from exc

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            username=str(row["username"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_donation(self, row: sqlite3.Row) -> Donation:
        return Donation(
            id=int(row["id"]),
            name=str(row["name"]),
            bank_info=str(row["bank_info"]),
            amount=float(row["amount"]),
            description=row["description"],
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = [
    "Database",
    "StoreError",
    "hash_password",
    "resolve_database_path",
    "verify_password",
]
