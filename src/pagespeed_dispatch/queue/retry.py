"""
Retry/DLQ утилиты для очереди.

Назначение:
- возвращать запись в очередь с ограниченным числом попыток
- простой backoff (sleep) перед повторной постановкой
- DLQ как отдельный stream <queue>:dlq

Важно:
- это синхронная реализация (подходит для нашего воркера)
- повтор = XADD копии с attempts+1, затем XACK оригинала;
  падение между ними даёт дубликат, что допустимо для at-least-once
"""

from __future__ import annotations

import time
from typing import Any

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.logging import get_project_logger

from .redis import redis_client
from .streams import ack_task, dead_letter

log = get_project_logger()


def requeue_with_backoff(
    *,
    stream: str,
    group: str,
    entry_id: str,
    fields: dict[str, Any],
    reason: str = "",
    max_attempts: int | None = None,
    backoff_sec: float | None = None,
) -> bool:
    """
    Повторно поставить запись в очередь, увеличивая attempts.

    Возвращает:
    - True: запись поставлена обратно в очередь
    - False: попытки исчерпаны, запись отправлена в DLQ
    """
    s = get_settings()
    limit = int(max_attempts if max_attempts is not None else s.queue_max_attempts)
    delay = float(backoff_sec if backoff_sec is not None else s.queue_requeue_backoff_sec)

    attempts = int(fields.get("attempts", 0) or 0) + 1
    if attempts >= limit:
        # В DLQ, чтобы не зациклиться
        dead_letter(
            stream=stream,
            group=group,
            entry_id=entry_id,
            fields={**fields, "attempts": attempts},
            reason=f"max_attempts_exceeded:{reason}" if reason else "max_attempts_exceeded",
        )
        return False

    # Backoff
    if delay > 0:
        time.sleep(delay)

    retry_fields = {k: str(v) for k, v in fields.items()}
    retry_fields["attempts"] = str(attempts)
    new_id = redis_client().xadd(stream, retry_fields)
    ack_task(stream=stream, group=group, entry_id=entry_id)
    log.warning(
        "task_requeued",
        extra={
            "payload": {
                "stream": stream,
                "entry_id": entry_id,
                "new_entry_id": str(new_id),
                "attempts": attempts,
                "max_attempts": limit,
                "backoff_sec": delay,
                "reason": reason,
            }
        },
    )
    return True
