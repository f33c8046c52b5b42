from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    # Stored timestamps are naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_dt(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def month_start(value: date | datetime | str) -> date:
    """Normalize a date, datetime or ``YYYY-MM[-DD]`` string to the first of its month."""
    if isinstance(value, str):
        text = value.strip()
        parts = text.split("-")
        if len(parts) < 2:
            raise ValueError(f"Invalid month: {value!r}")
        try:
            year, month = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise ValueError(f"Invalid month: {value!r}") from exc
        return date(year, month, 1)
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def next_month(value: date) -> date:
    start = month_start(value)
    if start.month == 12:
        return date(start.year + 1, 1, 1)
    return date(start.year, start.month + 1, 1)
