"""Time helpers for consistent UTC handling and age calculations."""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Return a naive UTC datetime for DB storage and comparisons."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def age_on(birth_date: date, today: date) -> int:
    """Whole years between `birth_date` and `today`."""
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
