"""
Half-open time intervals for resource occupation.

Two occupations [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1.
Back-to-back bookings (one ends exactly when the next starts) do not overlap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

DEFAULT_DURATION_MINUTES = 60


def resolve_duration(minutes: int | None, default: int = DEFAULT_DURATION_MINUTES) -> int:
    """Service duration in minutes; unset or non-positive falls back to default."""
    if minutes is None or minutes <= 0:
        return default
    return int(minutes)


@dataclass(frozen=True)
class Interval:
    """UTC-naive [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("interval end must be after start")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "Interval":
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def describe(self, tz_name: str = "UTC") -> str:
        tz = ZoneInfo(tz_name)
        start = self.start.replace(tzinfo=timezone.utc).astimezone(tz)
        end = self.end.replace(tzinfo=timezone.utc).astimezone(tz)
        return f"{start:%H:%M}-{end:%H:%M} ({self.minutes} min)"
