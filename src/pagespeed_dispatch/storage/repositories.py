"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
- Наружу отдаём доменные Schedule, не ORM-объекты
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from pagespeed_dispatch.domain.schedule import Schedule, validate_time_of_day

from .models import ScheduledReport


def _to_schedule(row: ScheduledReport) -> Schedule:
    return Schedule(
        id=row.id,
        requester_id=row.chat_id,
        subject=row.url,
        hour=row.hour,
        minute=row.minute,
        created_at=row.created_at,
    )


# =============================================================================
# SCHEDULE REPOSITORY
# =============================================================================
class ScheduleRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, *, requester_id: int, subject: str, hour: int, minute: int) -> Schedule:
        """
        Идемпотентно: повторное расписание того же URL на то же время
        вернёт существующую запись.
        """
        validate_time_of_day(hour, minute)
        existing = self.session.scalars(
            select(ScheduledReport).where(
                ScheduledReport.chat_id == requester_id,
                ScheduledReport.url == subject,
                ScheduledReport.hour == hour,
                ScheduledReport.minute == minute,
            )
        ).one_or_none()
        if existing is not None:
            return _to_schedule(existing)

        row = ScheduledReport(chat_id=requester_id, url=subject, hour=hour, minute=minute)
        self.session.add(row)
        self.session.flush()
        return _to_schedule(row)

    def get(self, schedule_id: int) -> Schedule | None:
        row = self.session.get(ScheduledReport, schedule_id)
        return _to_schedule(row) if row else None

    def list_all(self) -> list[Schedule]:
        rows = self.session.scalars(select(ScheduledReport).order_by(ScheduledReport.id)).all()
        return [_to_schedule(r) for r in rows]

    def list_by_requester(self, requester_id: int) -> list[Schedule]:
        rows = self.session.scalars(
            select(ScheduledReport)
            .where(ScheduledReport.chat_id == requester_id)
            .order_by(ScheduledReport.hour, ScheduledReport.minute, ScheduledReport.id)
        ).all()
        return [_to_schedule(r) for r in rows]

    def delete(self, schedule_id: int, *, requester_id: int | None = None) -> bool:
        """
        Удаление только по явному действию пользователя.
        requester_id ограничивает удаление своими расписаниями.
        """
        row = self.session.get(ScheduledReport, schedule_id)
        if row is None:
            return False
        if requester_id is not None and row.chat_id != requester_id:
            return False
        self.session.delete(row)
        self.session.flush()
        return True
