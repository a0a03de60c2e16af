"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- "стенные" часы в заданной таймзоне для расписаний
"""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def local_now(tz_name: str, *, now: datetime | None = None) -> datetime:
    """
    Текущее время в таймзоне расписаний.
    Наивный `now` трактуется как UTC.
    """
    base = now or utc_now()
    if base.tzinfo is None:
        base = base.replace(tzinfo=UTC)
    return base.astimezone(ZoneInfo(tz_name))


def seconds_until_next_minute(now: datetime | None = None) -> float:
    """
    Сколько секунд спать до ближайшей границы минуты.
    """
    base = now or utc_now()
    elapsed = base.second + base.microsecond / 1_000_000
    return max(0.0, 60.0 - elapsed)
