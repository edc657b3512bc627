import math
from typing import Optional

SESSION_STARTED_AT_COOKIE = "trainlytics_session_started_at"
SESSION_MAX_AGE_MS = 60 * 60 * 1000
SESSION_COOKIE_MAX_AGE_DAYS = 30
AUTH_COOKIE_PREFIX = "sb-"


def parse_session_started_at(value: Optional[str]) -> Optional[float]:
    """Return the session start timestamp in ms or ``None`` if unusable."""
    if not value:
        return None
    try:
        timestamp = float(value)
    except ValueError:
        return None
    if not math.isfinite(timestamp) or timestamp <= 0:
        return None
    return timestamp


def is_session_expired_from_start(
    started_at_ms: float, now_ms: float, max_age_ms: int = SESSION_MAX_AGE_MS
) -> bool:
    return now_ms - started_at_ms >= max_age_ms


def format_session_cookie_value(timestamp_ms: float) -> str:
    return str(max(0, math.floor(timestamp_ms)))
