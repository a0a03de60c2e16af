"""
Машина состояний обработки записи очереди.

Received -> Processing -> Delivered(ack) | Retryable(requeue) | Fatal(drop)

Назначение:
- явная классификация сбоев (retryable vs fatal)
- предсказуемое решение ack/nack для каждой записи
"""

from __future__ import annotations

from dataclasses import dataclass

from pagespeed_dispatch.common.errors import ErrCode, ProcessingError

from .enums import EntryState, FailureKind, Resolution

_CODE_TO_KIND = {
    ErrCode.ANALYSIS_TIMEOUT: FailureKind.timeout,
    ErrCode.ANALYSIS_UNREACHABLE: FailureKind.unreachable,
    ErrCode.ANALYSIS_INVALID: FailureKind.invalid,
    ErrCode.REPORT_ERROR: FailureKind.report,
    ErrCode.RECIPIENT_UNREACHABLE: FailureKind.recipient_unreachable,
    ErrCode.PAYLOAD_REJECTED: FailureKind.payload_rejected,
    ErrCode.DELIVERY_TRANSIENT: FailureKind.delivery_transient,
    ErrCode.BAD_PAYLOAD: FailureKind.bad_payload,
}


# =============================================================================
# ИТОГ ОБРАБОТКИ
# =============================================================================
@dataclass(frozen=True)
class DeliveryOutcome:
    success: bool
    state: EntryState
    resolution: Resolution
    error_kind: FailureKind | None = None
    reason: str | None = None


def delivered() -> DeliveryOutcome:
    return DeliveryOutcome(success=True, state=EntryState.delivered, resolution=Resolution.ack)


def classify(exc: BaseException) -> DeliveryOutcome:
    """
    Правила:
    - ProcessingError.retryable -> requeue
    - ProcessingError (не retryable) -> drop
    - всё прочее (неожиданное) -> requeue: лучше повторить, чем потерять
    """
    if isinstance(exc, ProcessingError):
        kind = _CODE_TO_KIND.get(exc.code, FailureKind.unexpected)
        if exc.retryable:
            return DeliveryOutcome(
                success=False,
                state=EntryState.retryable,
                resolution=Resolution.requeue,
                error_kind=kind,
                reason=exc.message,
            )
        return DeliveryOutcome(
            success=False,
            state=EntryState.fatal,
            resolution=Resolution.drop,
            error_kind=kind,
            reason=exc.message,
        )

    return DeliveryOutcome(
        success=False,
        state=EntryState.retryable,
        resolution=Resolution.requeue,
        error_kind=FailureKind.unexpected,
        reason=str(exc)[:200],
    )
