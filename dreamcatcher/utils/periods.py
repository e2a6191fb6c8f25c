"""
UTC helpers and billing period keys.

A user's "day" always ends at UTC midnight regardless of their locale.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

MONTH = "month"
DAY = "day"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_periods(now: Optional[datetime] = None) -> Dict[str, str]:
    """Period keys for the month (YYYY-MM) and day (YYYY-MM-DD) containing `now`."""
    current = ensure_utc(now) if now is not None else utcnow()
    return {
        MONTH: current.strftime("%Y-%m"),
        DAY: current.strftime("%Y-%m-%d"),
    }


def period_key(granularity: str, now: Optional[datetime] = None) -> str:
    if granularity not in (MONTH, DAY):
        raise ValueError(f"Unknown period granularity: {granularity}")
    return get_periods(now)[granularity]


def from_epoch_seconds(value: Optional[int]) -> Optional[datetime]:
    """Stripe timestamps are epoch seconds; 0/None mean "not set"."""
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def from_epoch_millis(value) -> Optional[datetime]:
    """Apple receipt timestamps are epoch milliseconds, often sent as strings."""
    try:
        millis = int(value)
    except (TypeError, ValueError):
        return None
    if millis <= 0:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
