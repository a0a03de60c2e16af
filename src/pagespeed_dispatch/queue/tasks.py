"""
Контракт задачи очереди (wire format).

Правила:
- payload: ровно {"subject": str, "requesterId": int}, компактный JSON
- изменение схемы ломает протокол (очередь нужно вычерпать)
- служебные поля (created_at, attempts) живут рядом, в полях stream-записи
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from pagespeed_dispatch.common.errors import BadPayloadError
from pagespeed_dispatch.common.time import utc_now

WIRE_KEYS = ("subject", "requesterId")


@dataclass(frozen=True)
class DispatchRequest:
    subject: str
    requester_id: int
    created_at: datetime = field(default_factory=utc_now, compare=False)

    def to_wire(self) -> str:
        return encode_payload(subject=self.subject, requester_id=self.requester_id)


def encode_payload(*, subject: str, requester_id: int) -> str:
    return json.dumps(
        {"subject": subject, "requesterId": requester_id},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def decode_payload(raw: str | bytes | None, *, created_at: datetime | None = None) -> DispatchRequest:
    """
    Разбор wire-payload. Любое отклонение от схемы -> BadPayloadError (fatal).
    """
    if raw is None:
        raise BadPayloadError("payload отсутствует")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise BadPayloadError("payload не JSON", details={"err": str(e)[:200]}) from e

    if not isinstance(data, dict) or set(data) != set(WIRE_KEYS):
        keys = sorted(data) if isinstance(data, dict) else None
        raise BadPayloadError("payload не соответствует схеме", details={"keys": keys})

    subject = data["subject"]
    requester_id = data["requesterId"]
    if not isinstance(subject, str) or not subject.strip():
        raise BadPayloadError("subject должен быть непустой строкой")
    if isinstance(requester_id, bool) or not isinstance(requester_id, int):
        raise BadPayloadError("requesterId должен быть числом")

    return DispatchRequest(
        subject=subject,
        requester_id=requester_id,
        created_at=created_at or utc_now(),
    )
