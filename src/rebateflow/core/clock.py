"""UTC time helpers shared by models, stores and services."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_key(value: datetime) -> str:
    """Fixed-width, lexically sortable UTC timestamp for store keys."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
