"""
Clock helpers shared by the scheduler and the queue builder.

Two clocks are in play: learning cards are due at an absolute timestamp in
seconds, review and interday-learning cards are due on a day number. Day
numbers count local days since the Unix epoch, with the day rolling over at a
fixed local hour (4:00 by default) rather than at midnight.
"""

import datetime
from typing import Optional

from .constants import DEFAULT_DAY_ROLLOVER_HOUR, SECONDS_PER_DAY

_EPOCH_DATE = datetime.date(1970, 1, 1)


def ensure_utc(ts: datetime.datetime) -> datetime.datetime:
    """Ensures the given datetime is UTC. Assumes UTC if naive."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    if ts.tzinfo != datetime.timezone.utc:
        return ts.astimezone(datetime.timezone.utc)
    return ts


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def resolve_now(now: Optional[datetime.datetime]) -> datetime.datetime:
    """Returns ``now`` as an aware UTC datetime, defaulting to the clock."""
    return ensure_utc(now) if now is not None else utc_now()


def to_timestamp(now: datetime.datetime) -> int:
    """Whole seconds since the Unix epoch."""
    return int(ensure_utc(now).timestamp())


def day_number(
    now: datetime.datetime, rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR
) -> int:
    """
    Number of scheduling days elapsed since the epoch at ``now``.

    The instant is converted to local time and shifted back by the rollover
    hour, so 03:59 still belongs to the previous day.
    """
    local = ensure_utc(now).astimezone()
    shifted = local - datetime.timedelta(hours=rollover_hour)
    return (shifted.date() - _EPOCH_DATE).days


def next_day_starts_at(
    now: datetime.datetime, rollover_hour: int = DEFAULT_DAY_ROLLOVER_HOUR
) -> datetime.datetime:
    """UTC instant at which the scheduling day after ``now`` begins."""
    local = ensure_utc(now).astimezone()
    rollover = local.replace(hour=rollover_hour, minute=0, second=0, microsecond=0)
    if rollover <= local:
        rollover += datetime.timedelta(days=1)
    return rollover.astimezone(datetime.timezone.utc)


def days_between(earlier_secs: int, later_secs: int) -> int:
    """Whole days from one timestamp to another, never negative."""
    return max(0, (later_secs - earlier_secs) // SECONDS_PER_DAY)
