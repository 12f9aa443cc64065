"""Reading streaks computed from session start dates.

A streak is a run of consecutive calendar days (UTC) with at least one
reading session. Everything here is a pure function of the dates passed in.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional


@dataclass(frozen=True)
class StreakStats:
    current: int
    longest: int


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def session_dates(sessions) -> list[date]:
    return [to_utc_date(s.start_time) for s in sessions]


def current_streak(dates: Iterable[date], today: date) -> int:
    """Days in the run ending today, or yesterday if nothing was read today.

    Logging yesterday keeps the streak alive for the whole of today; once a
    full day is skipped the streak is 0.
    """
    distinct = sorted(set(dates), reverse=True)
    yesterday = today - timedelta(days=1)
    if today not in distinct and yesterday not in distinct:
        return 0

    cursor = today if today in distinct else yesterday
    streak = 0
    for d in distinct:
        if d == cursor:
            streak += 1
            cursor -= timedelta(days=1)
        elif d < cursor:
            break
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    distinct = sorted(set(dates))
    if not distinct:
        return 0

    longest = run = 1
    for prev, cur in zip(distinct, distinct[1:]):
        if (cur - prev).days == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1
    return longest


def calculate_streaks(dates: Iterable[date], today: Optional[date] = None) -> StreakStats:
    dates = list(dates)
    if today is None:
        today = utc_today()
    return StreakStats(current=current_streak(dates, today), longest=longest_streak(dates))
