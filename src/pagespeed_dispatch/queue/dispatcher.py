"""
Диспетчер очереди проверок.

Назначение:
- единое имя очереди (из настроек)
- упаковка DispatchRequest в stream-запись
- enqueue_dispatch для всех продюсеров (бот, HTTP API, планировщик)
- consume_dispatch для воркера: одна запись за раз
"""

from __future__ import annotations

from datetime import datetime

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.errors import BadPayloadError
from pagespeed_dispatch.common.ids import new_event_id
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.common.metrics import QUEUE_ENQUEUED_TOTAL, QUEUE_TASKS_TOTAL
from pagespeed_dispatch.common.time import utc_now
from pagespeed_dispatch.domain.enums import DispatchSource

from .entry import QueueEntry
from .streams import dead_letter, enqueue, read_task
from .tasks import decode_payload, encode_payload

log = get_project_logger()


def dispatch_queue() -> tuple[str, str]:
    s = get_settings()
    return s.queue_dispatch_stream, s.queue_dispatch_group


def enqueue_dispatch(
    *,
    subject: str,
    requester_id: int,
    source: DispatchSource = DispatchSource.command,
) -> str:
    """
    Поставить проверку URL в очередь.

    TransportError пробрасывается вызывающему.
    """
    stream, _ = dispatch_queue()
    event_id = new_event_id("chk")
    fields = {
        "payload": encode_payload(subject=subject, requester_id=requester_id),
        "created_at": utc_now().isoformat(),
        "attempts": 0,
        "event_id": event_id,
        "source": source.value,
    }
    entry_id = enqueue(stream, fields)
    QUEUE_ENQUEUED_TOTAL.labels(queue=stream, source=source.value).inc()
    log.info(
        "enqueue_dispatch",
        extra={
            "payload": {
                "event_id": event_id,
                "entry_id": entry_id,
                "subject": subject,
                "requester_id": requester_id,
                "source": source.value,
            }
        },
    )
    return event_id


def _parse_created_at(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def consume_dispatch(
    *,
    consumer: str,
    block_ms: int | None = None,
    claim_idle_ms: int | None = None,
) -> QueueEntry | None:
    """
    Получить следующую запись (prefetch=1).

    Записи с битым payload сразу уходят в DLQ и не выдаются воркеру.
    """
    stream, group = dispatch_queue()
    msg = read_task(
        stream=stream,
        group=group,
        consumer=consumer,
        block_ms=get_settings().queue_block_ms if block_ms is None else block_ms,
        claim_idle_ms=claim_idle_ms,
    )
    if msg is None:
        return None

    try:
        attempts = int(msg.fields.get("attempts", 0) or 0)
    except ValueError:
        attempts = 0

    if msg.reclaimed:
        # каждая прошлая выдача без ack = упавший воркер = неудачная попытка
        attempts += max(0, msg.deliveries - 1)
        limit = int(get_settings().queue_max_attempts)
        if attempts >= limit:
            log.error(
                "dispatch_max_deliveries_exceeded",
                extra={
                    "payload": {
                        "entry_id": msg.entry_id,
                        "deliveries": msg.deliveries,
                        "attempts": attempts,
                        "max_attempts": limit,
                    }
                },
            )
            dead_letter(
                stream=stream,
                group=group,
                entry_id=msg.entry_id,
                fields={**msg.fields, "attempts": attempts},
                reason="max_deliveries_exceeded",
            )
            QUEUE_TASKS_TOTAL.labels(
                service="worker-dispatch", queue=stream, result="dead_letter"
            ).inc()
            return None
        msg.fields["attempts"] = str(attempts)

    try:
        request = decode_payload(
            msg.fields.get("payload"),
            created_at=_parse_created_at(msg.fields.get("created_at")),
        )
    except BadPayloadError as e:
        log.error(
            "dispatch_bad_payload",
            extra={"payload": {"entry_id": msg.entry_id, "err": e.message, "details": e.details}},
        )
        dead_letter(
            stream=stream,
            group=group,
            entry_id=msg.entry_id,
            fields=msg.fields,
            reason=e.code,
        )
        QUEUE_TASKS_TOTAL.labels(service="worker-dispatch", queue=stream, result="drop").inc()
        return None

    return QueueEntry(
        request=request,
        stream=stream,
        group=group,
        entry_id=msg.entry_id,
        fields=msg.fields,
        attempts=attempts,
        reclaimed=msg.reclaimed,
    )
