"""
Генерация идентификаторов.

Назначение:
- event_id для логов/очередей
- имя consumer'а в группе Redis Streams
"""

from __future__ import annotations

import os
import secrets
import socket
from datetime import UTC, datetime


def new_event_id(prefix: str = "evt") -> str:
    """
    Идентификатор события (лог/очереди/трассировка).
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    rnd = secrets.token_hex(6)
    return f"{prefix}_{ts}_{rnd}"


def new_consumer_id(service: str) -> str:
    """<service>-<hostname>-<pid>: уникально в пределах consumer group."""
    return f"{service}-{socket.gethostname()}-{os.getpid()}"
