"""Report date ranges and the preset periods accountants usually ask for."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo


def store_zone(name: str) -> tzinfo:
    """Resolve a configured timezone name."""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_store_time(timestamp: datetime, tz: tzinfo | None = None) -> datetime:
    """Express an aware timestamp as naive wall-clock time in ``tz`` (UTC by default)."""
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(tz or timezone.utc).replace(tzinfo=None)


class DatePreset(str, Enum):
    """Named report periods."""

    TODAY = "today"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    THIS_QUARTER = "this_quarter"
    THIS_YEAR = "this_year"
    LAST_MONTH = "last_month"


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


@dataclass(frozen=True)
class DateRange:
    """An inclusive ``[start, end]`` window in store-local time.

    Bounds are usually naive. Aware order timestamps are converted into
    the store timezone before being compared against naive bounds.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @classmethod
    def custom(cls, start_date: date, end_date: date) -> DateRange:
        """Whole days from the start of ``start_date`` to the end of ``end_date``."""
        return cls(start=_start_of_day(start_date), end=_end_of_day(end_date))

    def contains(self, timestamp: datetime, tz: tzinfo | None = None) -> bool:
        zone = tz or timezone.utc
        if timestamp.tzinfo is not None and self.start.tzinfo is None:
            timestamp = to_store_time(timestamp, zone)
        elif timestamp.tzinfo is None and self.start.tzinfo is not None:
            timestamp = timestamp.replace(tzinfo=zone)
        return self.start <= timestamp <= self.end

    @property
    def label(self) -> str:
        return f"{self.start:%b %d, %Y} - {self.end:%b %d, %Y}"


def resolve_preset(preset: DatePreset | str, now: datetime | None = None) -> DateRange:
    """Turn a preset into a concrete range relative to ``now``.

    Presets covering the current period end at ``now``; ``today`` and
    ``last_month`` cover whole days.
    """
    preset = DatePreset(preset)
    now = (now or datetime.now()).replace(tzinfo=None)
    today = now.date()

    if preset is DatePreset.TODAY:
        return DateRange(_start_of_day(today), _end_of_day(today))

    if preset is DatePreset.THIS_WEEK:
        # Weeks start on Sunday
        days_since_sunday = (today.weekday() + 1) % 7
        return DateRange(_start_of_day(today - timedelta(days=days_since_sunday)), now)

    if preset is DatePreset.THIS_MONTH:
        return DateRange(_start_of_day(today.replace(day=1)), now)

    if preset is DatePreset.THIS_QUARTER:
        quarter_month = 3 * ((today.month - 1) // 3) + 1
        return DateRange(_start_of_day(date(today.year, quarter_month, 1)), now)

    if preset is DatePreset.THIS_YEAR:
        return DateRange(_start_of_day(date(today.year, 1, 1)), now)

    # LAST_MONTH
    last_day = today.replace(day=1) - timedelta(days=1)
    return DateRange(_start_of_day(last_day.replace(day=1)), _end_of_day(last_day))
