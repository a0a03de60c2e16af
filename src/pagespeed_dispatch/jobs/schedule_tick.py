"""
Тик планировщика (раз в минуту).

Назначение:
- прочитать все расписания
- для каждого с (hour, minute) == текущей минуте в SCHEDULE_TIMEZONE
  поставить ровно одну задачу в очередь

Правила:
- сбой постановки одного расписания не мешает остальным
- хранилище недоступно -> тик пропускается целиком, повтор на следующей минуте
- двойной вызов в ту же минуту даёт две постановки (at-least-once, не баг)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.common.metrics import SCHEDULE_DISPATCHES_TOTAL, SCHEDULE_TICKS_TOTAL
from pagespeed_dispatch.common.time import local_now
from pagespeed_dispatch.domain.enums import DispatchSource
from pagespeed_dispatch.domain.schedule import Schedule, is_due
from pagespeed_dispatch.queue.dispatcher import enqueue_dispatch

log = get_project_logger()

ScheduleLoader = Callable[[], Iterable[Schedule]]
Enqueuer = Callable[..., str]


@dataclass
class ScheduleTickResult:
    now: str
    scanned: int
    matched: int
    enqueued: int
    failed: int


def select_due(schedules: Iterable[Schedule], now: datetime) -> list[Schedule]:
    return [s for s in schedules if is_due(s, now)]


def load_all_schedules() -> list[Schedule]:
    from pagespeed_dispatch.storage.db import db_session
    from pagespeed_dispatch.storage.repositories import ScheduleRepository

    with db_session() as session:
        return ScheduleRepository(session).list_all()


def run(
    *,
    now: datetime | None = None,
    load_schedules: ScheduleLoader | None = None,
    enqueue: Enqueuer | None = None,
) -> ScheduleTickResult | None:
    """
    Один тик. None -> тик пропущен (хранилище недоступно или планировщик выключен).
    """
    settings = get_settings()
    if not settings.schedule_enabled:
        log.info("schedule_tick_skipped", extra={"payload": {"reason": "disabled"}})
        SCHEDULE_TICKS_TOTAL.labels(result="skipped").inc()
        return None

    current = local_now(settings.schedule_timezone, now=now)
    loader = load_schedules or load_all_schedules
    push = enqueue or enqueue_dispatch

    try:
        schedules = list(loader())
    except Exception as e:
        log.error(
            "schedule_tick_store_unavailable",
            extra={"payload": {"now": current.isoformat(), "err": str(e)[:200]}},
        )
        SCHEDULE_TICKS_TOTAL.labels(result="skipped").inc()
        return None

    due = select_due(schedules, current)
    enqueued = 0
    failed = 0
    for schedule in due:
        try:
            push(
                subject=schedule.subject,
                requester_id=schedule.requester_id,
                source=DispatchSource.schedule,
            )
        except Exception as e:
            failed += 1
            SCHEDULE_DISPATCHES_TOTAL.labels(result="failed").inc()
            log.error(
                "schedule_dispatch_failed",
                extra={
                    "payload": {
                        "schedule_id": schedule.id,
                        "subject": schedule.subject,
                        "requester_id": schedule.requester_id,
                        "at": schedule.hhmm,
                        "err": str(e)[:200],
                    }
                },
            )
            continue

        enqueued += 1
        SCHEDULE_DISPATCHES_TOTAL.labels(result="enqueued").inc()
        log.info(
            "schedule_dispatch_enqueued",
            extra={
                "payload": {
                    "schedule_id": schedule.id,
                    "subject": schedule.subject,
                    "requester_id": schedule.requester_id,
                    "at": schedule.hhmm,
                }
            },
        )

    SCHEDULE_TICKS_TOTAL.labels(result="ok").inc()
    result = ScheduleTickResult(
        now=current.isoformat(),
        scanned=len(schedules),
        matched=len(due),
        enqueued=enqueued,
        failed=failed,
    )
    log.info(
        "schedule_tick_finished",
        extra={
            "payload": {
                "now": result.now,
                "scanned": result.scanned,
                "matched": result.matched,
                "enqueued": result.enqueued,
                "failed": result.failed,
            }
        },
    )
    return result
