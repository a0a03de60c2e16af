"""
Worker Scheduler.

Назначение:
- при старте создать недостающие таблицы (как и api-gateway)
- раз в минуту (на границе минуты) запускать schedule_tick
- ставить в очередь проверки по совпавшим расписаниям

Процесс не падает на ошибках тика: тик пропускается, следующий через минуту.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.logging import get_project_logger, setup_logging
from pagespeed_dispatch.common.time import seconds_until_next_minute
from pagespeed_dispatch.jobs.schedule_tick import run as run_schedule_tick

log = get_project_logger()

# просыпаемся чуть позже границы, чтобы не попасть в конец прошлой минуты
_BOUNDARY_SLACK_SEC = 0.5


def sleep_to_next_minute() -> None:
    time.sleep(seconds_until_next_minute() + _BOUNDARY_SLACK_SEC)


def _default_init_db() -> None:
    from pagespeed_dispatch.storage.db import init_db

    init_db()


def init_store(init: Callable[[], None] | None = None) -> bool:
    """
    Создаёт таблицы расписаний. БД недоступна -> лог и работаем дальше:
    тики будут пропускаться, пока хранилище не поднимется.
    """
    try:
        (init or _default_init_db)()
    except Exception as e:
        log.error(
            "worker_scheduler_init_db_failed",
            extra={"payload": {"err": str(e)[:300]}},
        )
        return False
    return True


def main() -> None:
    setup_logging("worker-scheduler")
    settings = get_settings()
    store_ready = init_store()

    log.info(
        "worker_scheduler_started",
        extra={
            "payload": {
                "enabled": bool(settings.schedule_enabled),
                "timezone": settings.schedule_timezone,
                "queue": settings.queue_dispatch_stream,
                "store_ready": store_ready,
            }
        },
    )

    while True:
        sleep_to_next_minute()
        try:
            run_schedule_tick()
        except Exception as e:
            log.error(
                "worker_scheduler_error",
                extra={"payload": {"err": str(e)[:300]}},
            )


if __name__ == "__main__":
    main()
