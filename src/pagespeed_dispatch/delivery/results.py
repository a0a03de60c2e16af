"""
Утилиты для работы с результатами доставки.

Назначение:
- нормализация ошибок
- перевод неуспешного результата в DeliveryFailure для воркера
"""

from __future__ import annotations

from pagespeed_dispatch.common.errors import DeliveryFailure, ErrCode

from .base import DeliveryResult


def ok_result(
    provider: str, message_id: str | None = None, meta: dict | None = None
) -> DeliveryResult:
    return DeliveryResult(ok=True, provider=provider, message_id=message_id, meta=meta)


def fail_result(
    provider: str,
    error: str,
    *,
    error_code: str = ErrCode.DELIVERY_TRANSIENT,
    permanent: bool = False,
    meta: dict | None = None,
) -> DeliveryResult:
    return DeliveryResult(
        ok=False,
        provider=provider,
        error=error,
        error_code=error_code,
        permanent=permanent,
        meta=meta,
    )


def raise_for_result(result: DeliveryResult) -> DeliveryResult:
    if result.ok:
        return result
    raise DeliveryFailure(
        result.error_code or ErrCode.DELIVERY_TRANSIENT,
        result.error or "Не удалось доставить отчёт",
        {"provider": result.provider, **(result.meta or {})},
        permanent=result.permanent,
    )
