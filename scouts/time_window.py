"""Calendar-day windows in a named timezone, and the daily-summary schedule.

A day is resolved as civil dates first (local midnight to the next local
midnight) and only then converted to absolute instants, so the spring and
autumn DST days come out as 23 and 25 hours long.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
DATE_SELECTOR_RE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{4})$")

TimezoneLike = Union[str, ZoneInfo]


@dataclass(frozen=True)
class DayWindow:
    """[start, end) in UTC for one local calendar day."""

    start: datetime
    end: datetime
    label: str

    @property
    def start_timestamp(self) -> int:
        return int(self.start.timestamp())

    @property
    def end_timestamp(self) -> int:
        return int(self.end.timestamp())

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, timestamp) -> bool:
        return self.start_timestamp <= int(timestamp) < self.end_timestamp


@dataclass(frozen=True)
class DaySelectorError:
    message: str


def _zone(tz: TimezoneLike) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else ZoneInfo(str(tz))


def _local_now(tz: ZoneInfo, now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def format_day_label(day: date) -> str:
    return f"{day.day}-{MONTHS[day.month - 1]}-{day.year}"


def day_window(day: date, tz: TimezoneLike) -> DayWindow:
    zone = _zone(tz)
    start_local = datetime.combine(day, dt_time(0, 0), tzinfo=zone)
    end_local = datetime.combine(day + timedelta(days=1), dt_time(0, 0), tzinfo=zone)
    return DayWindow(
        start=start_local.astimezone(timezone.utc),
        end=end_local.astimezone(timezone.utc),
        label=format_day_label(day),
    )


def local_today(tz: TimezoneLike, now: Optional[datetime] = None) -> date:
    return _local_now(_zone(tz), now).date()


def previous_calendar_day(tz: TimezoneLike, now: Optional[datetime] = None) -> DayWindow:
    """Yesterday in ``tz``, independent of the host's own timezone."""
    return day_window(local_today(tz, now) - timedelta(days=1), tz)


def parse_day_selector(text, tz: TimezoneLike, now: Optional[datetime] = None):
    """Resolve "N" (days ago, 0 = today) or "D-Mon-YYYY" into a DayWindow.

    Malformed input returns a :class:`DaySelectorError` instead of raising.
    """
    value = str(text or "").strip()
    if not value:
        return DaySelectorError('No day given. Use "11-Jan-2026" or a number like "1" for yesterday.')

    if value.isdecimal():
        try:
            return day_window(local_today(tz, now) - timedelta(days=int(value)), tz)
        except OverflowError:
            return DaySelectorError(f"{value} days ago is out of range.")

    match = DATE_SELECTOR_RE.match(value)
    if not match:
        return DaySelectorError('Invalid date format. Use "11-Jan-2026" or a number like "1" for yesterday.')

    month_text = match.group(2).lower()
    months = [m.lower() for m in MONTHS]
    if month_text not in months:
        return DaySelectorError('Invalid month. Use 3-letter format like "Jan", "Feb", etc.')

    try:
        day = date(int(match.group(3)), months.index(month_text) + 1, int(match.group(1)))
    except ValueError as exc:
        return DaySelectorError(f"Invalid date {value!r}: {exc}")
    try:
        return day_window(day, tz)
    except OverflowError:
        # First and last calendar days can fall outside datetime's range in UTC.
        return DaySelectorError(f"{value} is out of range.")


def summary_time_for(day: date, weekday_time: dt_time, weekend_time: dt_time) -> dt_time:
    """Mon-Fri use the weekday time, Sat-Sun the weekend time."""
    return weekend_time if day.weekday() >= 5 else weekday_time


def next_daily_run(
    now: datetime,
    tz: TimezoneLike,
    weekday_time: dt_time,
    weekend_time: dt_time,
) -> datetime:
    """Next instant (UTC, strictly after ``now``) at which the summary should run."""
    zone = _zone(tz)
    local_now = _local_now(zone, now)
    day = local_now.date()
    run_at = datetime.combine(day, summary_time_for(day, weekday_time, weekend_time), tzinfo=zone)
    if run_at.astimezone(timezone.utc) <= local_now.astimezone(timezone.utc):
        day += timedelta(days=1)
        run_at = datetime.combine(day, summary_time_for(day, weekday_time, weekend_time), tzinfo=zone)
    return run_at.astimezone(timezone.utc)
