import datetime
from typing import Optional


def to_local_iso_date(value: Optional[datetime.date] = None) -> str:
    """Return ``value`` (default: today in local time) as ``YYYY-MM-DD``."""
    if value is None:
        value = datetime.date.today()
    if isinstance(value, datetime.datetime):
        value = value.date()
    return value.isoformat()


def local_iso_date_days_ago(days_ago: int, today: Optional[datetime.date] = None) -> str:
    base = today or datetime.date.today()
    return to_local_iso_date(base - datetime.timedelta(days=days_ago))


def parse_iso_date(value: str) -> Optional[datetime.date]:
    try:
        return datetime.date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def short_month_day_label(log_date: str) -> str:
    """Format ``2026-02-16`` as ``Feb 16``."""
    parsed = parse_iso_date(log_date)
    if parsed is None:
        return log_date
    return f"{parsed.strftime('%b')} {parsed.day}"
