"""
Доменные перечисления (enum).

Используются во всей системе:
- состояние записи очереди в воркере
- итог обработки (ack / requeue / drop)
- вид сбоя
"""

from __future__ import annotations

import enum


class EntryState(str, enum.Enum):
    """
    Состояние записи очереди внутри воркера.
    """

    received = "received"
    processing = "processing"
    delivered = "delivered"
    retryable = "retryable"
    fatal = "fatal"


class Resolution(str, enum.Enum):
    """
    Чем завершается запись: ровно одно из трёх.
    """

    ack = "ack"
    requeue = "requeue"
    drop = "drop"


class FailureKind(str, enum.Enum):
    """
    Вид сбоя при обработке записи.
    """

    timeout = "timeout"
    unreachable = "unreachable"
    invalid = "invalid"
    report = "report"
    recipient_unreachable = "recipient_unreachable"
    payload_rejected = "payload_rejected"
    delivery_transient = "delivery_transient"
    bad_payload = "bad_payload"
    unexpected = "unexpected"


class DispatchSource(str, enum.Enum):
    """
    Откуда пришла задача.
    """

    command = "command"
    api = "api"
    schedule = "schedule"
