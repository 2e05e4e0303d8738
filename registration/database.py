"""SQLite-backed persistence for registration records."""
from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import User

logger = logging.getLogger("registration.database")

# SQLite INTEGER bounds; ids outside them cannot be bound as parameters.
_SQLITE_MIN_INT = -(2**63)
_SQLITE_MAX_INT = 2**63 - 1


class StorageError(RuntimeError):
    """Raised when the underlying database fails to complete an operation."""


class DuplicateEmailError(StorageError):
    """Raised when a registration collides with an existing email address."""

    def __init__(self, email: str) -> None:
        super().__init__(f"A user with the email {email!r} already exists")
        self.email = email


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "registration.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Database:
    """Wrapper around a single SQLite connection holding the ``users`` table.

    The connection is acquired by :meth:`open` and released by :meth:`close`;
    the instance can also be used as a context manager. All statements are
    serialised through one lock so the handle can be shared between the
    worker threads serving requests.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            try:
                conn = sqlite3.connect(self._path, check_same_thread=False)
            except sqlite3.Error as exc:
                raise StorageError(f"Unable to open database at {self._path}") from exc
            conn.row_factory = sqlite3.Row
            self._conn = conn
        logger.info("Connected to SQLite database at %s", self._path)

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except sqlite3.Error:
            logger.exception("Error closing database connection")
        else:
            logger.info("Database connection closed.")

    def __enter__(self) -> "Database":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Database connection is not open")
        return self._conn

    def initialize(self) -> None:
        """Create the ``users`` table if it does not already exist."""

        opened_here = not self.is_open
        self.open()
        try:
            with self._lock:
                conn = self._connection()
                with conn:
                    conn.executescript(
                        """
                        CREATE TABLE IF NOT EXISTS users (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            name TEXT NOT NULL,
                            gender TEXT NOT NULL,
                            email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                            country TEXT NOT NULL,
                            created_at TEXT NOT NULL
                        );

                        CREATE INDEX IF NOT EXISTS idx_users_created_at ON users(created_at);
                        """
                    )
        except sqlite3.Error as exc:
            raise StorageError("Failed to create the users table") from exc
        finally:
            if opened_here:
                self.close()
        logger.info("Users table ready.")

    # ------------------------------------------------------------------
    # Registration records
    # ------------------------------------------------------------------
    def create_user(self, *, name: str, gender: str, email: str, country: str) -> User:
        """Insert a registration and return the stored record.

        Raises :class:`DuplicateEmailError` when the email is already
        registered; the failed insert leaves the table untouched.
        """

        created_at = _current_timestamp()
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute(
                        """
                        INSERT INTO users (name, gender, email, country, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (name, gender, email, country, _serialize_datetime(created_at)),
                    )
            except sqlite3.IntegrityError as exc:
                if "UNIQUE constraint failed" in str(exc):
                    raise DuplicateEmailError(email) from exc
                raise StorageError("Failed to insert user") from exc
            except sqlite3.Error as exc:
                raise StorageError("Failed to insert user") from exc
            user_id = cursor.lastrowid

        return User(
            id=int(user_id),
            name=name,
            gender=gender,
            email=email,
            country=country,
            created_at=created_at,
        )

    def list_users(self) -> List[User]:
        """Return every record, most recently created first."""

        with self._lock:
            try:
                rows = self._connection().execute(
                    "SELECT * FROM users ORDER BY created_at DESC, id DESC"
                ).fetchall()
            except sqlite3.Error as exc:
                raise StorageError("Failed to list users") from exc
        return [self._row_to_user(row) for row in rows]

    def get_user(self, user_id: int) -> Optional[User]:
        if not _SQLITE_MIN_INT <= user_id <= _SQLITE_MAX_INT:
            return None
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT * FROM users WHERE id = ?", (user_id,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to load user {user_id}") from exc
        if row is None:
            return None
        return self._row_to_user(row)

    def delete_user(self, user_id: int) -> bool:
        if not _SQLITE_MIN_INT <= user_id <= _SQLITE_MAX_INT:
            return False
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to delete user {user_id}") from exc
            return cursor.rowcount > 0

    def count_users(self) -> int:
        with self._lock:
            try:
                row = self._connection().execute("SELECT COUNT(*) FROM users").fetchone()
            except sqlite3.Error as exc:
                raise StorageError("Failed to count users") from exc
        return int(row[0])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            gender=str(row["gender"]),
            email=str(row["email"]),
            country=str(row["country"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "DuplicateEmailError", "StorageError", "resolve_database_path"]
