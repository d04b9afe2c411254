"""Futures trading-session boundaries (18:00 America/New_York)."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from alert_relay.utils.constants import SESSION_START_HOUR, SESSION_TIMEZONE

_TZ = ZoneInfo(SESSION_TIMEZONE)
_SATURDAY = 5


def _at_session_hour(local: datetime) -> datetime:
    # Rebuild from the date so the UTC offset matches that day (DST changes)
    return datetime(local.year, local.month, local.day, SESSION_START_HOUR, tzinfo=_TZ)


def current_session_start(now: datetime | None = None) -> datetime:
    """Start of the session containing ``now``, in UTC."""
    local = (now or datetime.now(timezone.utc)).astimezone(_TZ)
    start = _at_session_hour(local)
    if local < start:
        start = _at_session_hour(local - timedelta(days=1))
    return start.astimezone(timezone.utc)


def previous_session_range(now: datetime | None = None) -> tuple[datetime, datetime]:
    end = current_session_start(now)
    local_end = end.astimezone(_TZ)
    start = _at_session_hour(local_end - timedelta(days=1))
    return start.astimezone(timezone.utc), end


def next_session_start(now: datetime | None = None) -> datetime:
    """Next session start strictly after ``now``, in UTC. No session opens on Saturday."""
    local = (now or datetime.now(timezone.utc)).astimezone(_TZ)
    start = _at_session_hour(local)
    if local >= start:
        start = _at_session_hour(local + timedelta(days=1))
    if start.weekday() == _SATURDAY:
        start = _at_session_hour(start + timedelta(days=1))
    return start.astimezone(timezone.utc)


def period_range(period: str, now: datetime | None = None) -> tuple[datetime | None, datetime | None]:
    """(opened_from, opened_until) for a stats period; (None, None) for "all"."""
    now = now or datetime.now(timezone.utc)
    if period == "daily":
        return current_session_start(now), None
    if period == "previous_session":
        return previous_session_range(now)
    if period == "weekly":
        return now - timedelta(days=7), None
    if period == "monthly":
        return now - timedelta(days=30), None
    return None, None
