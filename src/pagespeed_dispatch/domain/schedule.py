"""
Расписание ежедневной проверки.

Schedule: (requester, subject, HH:MM). Совпадение строго по минуте,
не по диапазону.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from pagespeed_dispatch.common.errors import ValidationError

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{1,2})$")


@dataclass(frozen=True)
class Schedule:
    id: int
    requester_id: int
    subject: str
    hour: int
    minute: int
    created_at: datetime | None = None

    @property
    def hhmm(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def validate_time_of_day(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise ValidationError("hour должен быть в диапазоне 0–23", details={"hour": hour})
    if not 0 <= minute <= 59:
        raise ValidationError("minute должен быть в диапазоне 0–59", details={"minute": minute})


def parse_hhmm(raw: str) -> tuple[int, int]:
    """
    "9:05" / "09:05" -> (9, 5). Всё остальное -> ValidationError.
    """
    m = _HHMM_RE.match((raw or "").strip())
    if not m:
        raise ValidationError("Ожидается время в формате HH:MM", details={"value": raw})
    hour, minute = int(m.group(1)), int(m.group(2))
    validate_time_of_day(hour, minute)
    return hour, minute


def is_due(schedule: Schedule, now: datetime) -> bool:
    return schedule.hour == now.hour and schedule.minute == now.minute
