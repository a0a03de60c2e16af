"""
Базовые интерфейсы доставки.

Назначение:
- единый контракт для каналов доставки (telegram и т.д.)
- результат доставки несёт классификацию сбоя: постоянный или временный
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class DeliveryResult:
    """
    Результат доставки.
    """

    ok: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    error_code: str | None = None  # ErrCode.RECIPIENT_UNREACHABLE | PAYLOAD_REJECTED | ...
    permanent: bool = False
    meta: dict[str, Any] | None = None


class DeliveryProvider(Protocol):
    """
    Контракт провайдера доставки.
    """

    name: str

    def send_document(
        self,
        *,
        requester_id: int,
        filename: str,
        content: bytes,
        mime: str = "application/pdf",
        caption: str | None = None,
    ) -> DeliveryResult: ...

    def send_message(self, *, requester_id: int, text: str) -> DeliveryResult: ...
