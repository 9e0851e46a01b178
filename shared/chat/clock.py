"""Relative time labels for chat messages.

Labels are evaluated in priority order:

- recent     : ``h:mm AM/PM``
- same day   : ``Today at h:mm AM/PM``
- yesterday  : ``Yesterday at HH:mm`` (24-hour clock on purpose)
- otherwise  : ``MM/dd/yyyy h:mm AM/PM``

What counts as "recent" is selectable. ``ELAPSED`` compares the real time
between the message and now against a window (60 minutes by default).
``HOUR_BUCKET`` keeps the legacy behavior of comparing only the hour-of-day
components, which treats 1:59 and 2:00 as different buckets and 09:00 three
days ago as the same one.

Calendar comparisons always happen in the viewer's timezone.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, Optional

DEFAULT_RECENT_WINDOW = timedelta(minutes=60)


class RecentRule(Enum):
    ELAPSED = "elapsed"
    HOUR_BUCKET = "hour_bucket"

    @classmethod
    def from_value(
        cls, value: Any, *, default: Optional["RecentRule"] = None
    ) -> "RecentRule":
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if normalized in {member.name.lower(), member.value}:
                    return member

        return default or cls.ELAPSED


def _localize(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is None:
        # Naive values are read as local wall time.
        return value.astimezone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def _clock_12h(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def _clock_24h(value: datetime) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def _full_date(value: datetime) -> str:
    return f"{value.month:02d}/{value.day:02d}/{value.year:04d} {_clock_12h(value)}"


def _is_recent(
    created: datetime,
    now: datetime,
    rule: RecentRule,
    window: timedelta,
) -> bool:
    if rule is RecentRule.HOUR_BUCKET:
        return abs(now.hour - created.hour) < 1
    return abs(now - created) < window


def format_label(
    created_at: datetime,
    now: datetime,
    *,
    rule: RecentRule = RecentRule.ELAPSED,
    window: timedelta = DEFAULT_RECENT_WINDOW,
    tz: Optional[tzinfo] = None,
) -> str:
    created = _localize(created_at, tz)
    current = _localize(now, tz)

    if _is_recent(created, current, rule, window):
        return _clock_12h(created)

    if created.date() == current.date():
        return f"Today at {_clock_12h(created)}"

    if created.date() == current.date() - timedelta(days=1):
        return f"Yesterday at {_clock_24h(created)}"

    return _full_date(created)


class ClockFormatter:
    """format_label bound to one viewer's rule, window and timezone."""

    def __init__(
        self,
        *,
        rule: RecentRule = RecentRule.ELAPSED,
        window: timedelta = DEFAULT_RECENT_WINDOW,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.rule = rule
        self.window = window
        self.tz = tz

    @classmethod
    def from_config(cls, config) -> "ClockFormatter":
        return cls(
            rule=config.recent_rule,
            window=timedelta(minutes=config.recent_window_minutes),
            tz=config.tzinfo(),
        )

    def label(self, created_at: datetime, now: Optional[datetime] = None) -> str:
        if now is None:
            now = datetime.now(self.tz) if self.tz else datetime.now().astimezone()
        return format_label(
            created_at,
            now,
            rule=self.rule,
            window=self.window,
            tz=self.tz,
        )


__all__ = [
    "ClockFormatter",
    "DEFAULT_RECENT_WINDOW",
    "RecentRule",
    "format_label",
]
