"""Domain models for the registration service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class User:
    """Represents a registration record stored in the database."""

    id: int
    name: str
    gender: str
    email: str
    country: str
    created_at: datetime


__all__ = ["User"]
