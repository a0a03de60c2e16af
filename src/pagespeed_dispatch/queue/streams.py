"""
Redis Streams: примитивы очереди с consumer group.

Гарантии:
- XADD до возврата из enqueue (durable при включённом AOF на брокере)
- XREADGROUP COUNT=1: следующая запись выдаётся только по запросу воркера
- запись остаётся pending до XACK; зависшие pending-записи упавших
  consumer'ов забираются через XAUTOCLAIM (at-least-once)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from redis.exceptions import RedisError, ResponseError

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.errors import TransportError
from pagespeed_dispatch.common.logging import get_project_logger

from .redis import redis_client

log = get_project_logger()

_KNOWN_GROUPS: set[tuple[str, str]] = set()


@dataclass
class StreamMessage:
    stream: str
    entry_id: str
    fields: dict[str, str]
    reclaimed: bool = False
    # сколько раз запись выдавалась consumer'ам группы (включая текущую выдачу)
    deliveries: int = 1


@dataclass
class QueueStat:
    queue: str
    group: str
    depth: int
    pending: int
    dlq_depth: int


def stream_dlq_name(stream: str) -> str:
    return f"{stream}:dlq"


def ensure_group(stream: str, group: str) -> None:
    """
    Создаёт consumer group (и сам stream) если их ещё нет.
    """
    if (stream, group) in _KNOWN_GROUPS:
        return
    try:
        redis_client().xgroup_create(name=stream, groupname=group, id="0", mkstream=True)
        log.info("stream_group_created", extra={"payload": {"stream": stream, "group": group}})
    except ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise
    _KNOWN_GROUPS.add((stream, group))


def enqueue(stream: str, fields: dict[str, Any]) -> str:
    """
    XADD. Ошибки транспорта -> TransportError (решение о ретрае у вызывающего).
    """
    try:
        entry_id = redis_client().xadd(stream, {k: str(v) for k, v in fields.items()})
    except RedisError as e:
        log.error(
            "stream_enqueue_failed",
            extra={"payload": {"stream": stream, "err": str(e)[:200]}},
        )
        raise TransportError(details={"stream": stream, "err": str(e)[:200]}) from e
    return str(entry_id)


def _delivery_count(r, stream: str, group: str, entry_id: str) -> int:
    """
    times_delivered из PEL. XAUTOCLAIM увеличивает счётчик на каждую выдачу.
    """
    rows = r.xpending_range(stream, group, min=entry_id, max=entry_id, count=1)
    for row in rows or []:
        return max(1, int(row.get("times_delivered", 1) or 1))
    return 1


def _reclaim_stale(
    *, stream: str, group: str, consumer: str, min_idle_ms: int
) -> StreamMessage | None:
    r = redis_client()
    resp = r.xautoclaim(
        name=stream,
        groupname=group,
        consumername=consumer,
        min_idle_time=max(0, int(min_idle_ms)),
        start_id="0-0",
        count=1,
    )
    claimed = resp[1] if resp and len(resp) > 1 else []
    for entry_id, fields in claimed:
        if not fields:
            # запись удалена из stream, но висела в PEL
            r.xack(stream, group, entry_id)
            continue
        deliveries = _delivery_count(r, stream, group, str(entry_id))
        log.warning(
            "stream_entry_reclaimed",
            extra={
                "payload": {
                    "stream": stream,
                    "entry_id": entry_id,
                    "consumer": consumer,
                    "deliveries": deliveries,
                }
            },
        )
        return StreamMessage(
            stream=stream,
            entry_id=str(entry_id),
            fields=dict(fields),
            reclaimed=True,
            deliveries=deliveries,
        )
    return None


def read_task(
    *,
    stream: str,
    group: str,
    consumer: str,
    block_ms: int = 5000,
    claim_idle_ms: int | None = None,
) -> StreamMessage | None:
    """
    Выдаёт ровно одну запись (prefetch=1) или None по таймауту.

    Сначала забираем зависшие pending-записи (crash воркера после чтения),
    затем новые записи группы.
    """
    ensure_group(stream, group)
    idle = get_settings().queue_claim_idle_ms if claim_idle_ms is None else claim_idle_ms

    stale = _reclaim_stale(stream=stream, group=group, consumer=consumer, min_idle_ms=idle)
    if stale is not None:
        return stale

    resp = redis_client().xreadgroup(
        groupname=group,
        consumername=consumer,
        streams={stream: ">"},
        count=1,
        # BLOCK 0 в Redis = ждать бесконечно; 0 у нас = без ожидания
        block=block_ms or None,
    )
    if not resp:
        return None
    _, entries = resp[0]
    if not entries:
        return None
    entry_id, fields = entries[0]
    return StreamMessage(stream=stream, entry_id=str(entry_id), fields=dict(fields or {}))


def ack_task(*, stream: str, group: str, entry_id: str) -> None:
    redis_client().xack(stream, group, entry_id)


def dead_letter(
    *, stream: str, group: str, entry_id: str, fields: dict[str, Any], reason: str
) -> str:
    """
    Переносит запись в <stream>:dlq и подтверждает оригинал.
    """
    dlq = stream_dlq_name(stream)
    dlq_fields = {k: str(v) for k, v in fields.items()}
    dlq_fields.update({"dlq_reason": reason, "origin_id": entry_id})
    dlq_id = redis_client().xadd(dlq, dlq_fields)
    ack_task(stream=stream, group=group, entry_id=entry_id)
    log.warning(
        "task_moved_to_dlq",
        extra={"payload": {"stream": stream, "dlq": dlq, "entry_id": entry_id, "reason": reason}},
    )
    return str(dlq_id)


def _xpending_count(r, stream: str, group: str) -> int:
    info = r.xpending(stream, group)
    if isinstance(info, dict):
        return int(info.get("pending", 0) or 0)
    return 0


def queue_stats() -> list[QueueStat]:
    s = get_settings()
    r = redis_client()
    stream = s.queue_dispatch_stream
    group = s.queue_dispatch_group
    try:
        pending = _xpending_count(r, stream, group)
    except ResponseError:
        # NOGROUP: воркер ещё ни разу не стартовал
        pending = 0
    return [
        QueueStat(
            queue=stream,
            group=group,
            depth=int(r.xlen(stream)),
            pending=pending,
            dlq_depth=int(r.xlen(stream_dlq_name(stream))),
        )
    ]
