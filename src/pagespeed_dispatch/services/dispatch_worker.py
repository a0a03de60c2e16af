"""
Обработка записей очереди проверок.

Алгоритм на одну запись:
- Received -> Processing: анализ URL (синхронно, держит слот воркера)
- отчёт PDF -> доставка requester'у
- Delivered -> ack; Retryable -> nack(requeue); Fatal -> nack(drop)

Правила:
- ровно одно разрешение записи; неразрешённая запись закрывается в finally
- следующая запись читается только после разрешения текущей
- ошибки одной записи не останавливают цикл
"""

from __future__ import annotations

from collections.abc import Callable

from pagespeed_dispatch.analysis.base import AnalysisProvider
from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.ids import new_consumer_id
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.common.metrics import QUEUE_TASKS_TOTAL, track_stage_latency
from pagespeed_dispatch.delivery.base import DeliveryProvider
from pagespeed_dispatch.delivery.results import raise_for_result
from pagespeed_dispatch.domain.enums import EntryState, FailureKind, Resolution
from pagespeed_dispatch.domain.state_machine import DeliveryOutcome, classify, delivered
from pagespeed_dispatch.queue.dispatcher import consume_dispatch
from pagespeed_dispatch.queue.entry import QueueEntry
from pagespeed_dispatch.report.pdf import PdfReportRenderer, render_failure_notice

log = get_project_logger()

SERVICE = "worker-dispatch"

# Что увидит пользователь в уведомлении о сбое
_NOTICE_REASONS: dict[FailureKind, str] = {
    FailureKind.timeout: "the page did not load in time",
    FailureKind.unreachable: "the page is unreachable",
    FailureKind.invalid: "the URL cannot be analyzed",
    FailureKind.bad_payload: "the request is malformed",
}

# Получателю уже нечего отправить
_NO_NOTICE: frozenset[FailureKind] = frozenset({FailureKind.recipient_unreachable})


def _interrupted() -> DeliveryOutcome:
    return DeliveryOutcome(
        success=False,
        state=EntryState.retryable,
        resolution=Resolution.requeue,
        error_kind=FailureKind.unexpected,
        reason="interrupted",
    )


class DispatchWorker:
    def __init__(
        self,
        *,
        analysis: AnalysisProvider,
        delivery: DeliveryProvider,
        renderer: PdfReportRenderer | None = None,
        consumer: str | None = None,
        notify_on_failure: bool | None = None,
        report_filename: str | None = None,
    ) -> None:
        s = get_settings()
        self.analysis = analysis
        self.delivery = delivery
        self.renderer = renderer or PdfReportRenderer()
        self.consumer = consumer or new_consumer_id(SERVICE)
        self.notify_on_failure = (
            s.notify_requester_on_failure if notify_on_failure is None else notify_on_failure
        )
        self.report_filename = report_filename or s.report_filename

    # ------------------------------------------------------------------
    # Одна запись
    # ------------------------------------------------------------------
    def _handle(self, entry: QueueEntry) -> None:
        with track_stage_latency(SERVICE, "analysis"):
            report = self.analysis.analyze(entry.subject)

        with track_stage_latency(SERVICE, "report"):
            pdf = self.renderer.render(report)
            caption = self.renderer.caption(report)

        with track_stage_latency(SERVICE, "delivery"):
            result = self.delivery.send_document(
                requester_id=entry.requester_id,
                filename=self.report_filename,
                content=pdf,
                mime=self.renderer.content_type,
                caption=caption,
            )
            raise_for_result(result)

        log.info(
            "dispatch_delivered",
            extra={
                "payload": {
                    "entry_id": entry.entry_id,
                    "subject": entry.subject,
                    "requester_id": entry.requester_id,
                    "performance_score": report.performance_score,
                    "message_id": result.message_id,
                }
            },
        )

    def _resolve(self, entry: QueueEntry, outcome: DeliveryOutcome) -> str:
        reason = outcome.error_kind.value if outcome.error_kind else ""
        if outcome.resolution is Resolution.ack:
            entry.ack()
            return "ack"
        if outcome.resolution is Resolution.requeue:
            return "requeue" if entry.nack(requeue=True, reason=reason) else "dead_letter"
        entry.nack(requeue=False, reason=reason)
        return "drop"

    def _notify_failure(self, entry: QueueEntry, outcome: DeliveryOutcome) -> None:
        if outcome.error_kind in _NO_NOTICE:
            return
        text = render_failure_notice(
            subject=entry.subject,
            reason=_NOTICE_REASONS.get(outcome.error_kind) if outcome.error_kind else None,
        )
        try:
            result = self.delivery.send_message(requester_id=entry.requester_id, text=text)
        except Exception as e:
            log.warning(
                "failure_notice_error",
                extra={"payload": {"entry_id": entry.entry_id, "err": str(e)[:200]}},
            )
            return
        if not result.ok:
            log.warning(
                "failure_notice_not_sent",
                extra={"payload": {"entry_id": entry.entry_id, "error": result.error}},
            )

    def process_entry(self, entry: QueueEntry) -> DeliveryOutcome:
        log.info(
            "dispatch_received",
            extra={
                "payload": {
                    "entry_id": entry.entry_id,
                    "subject": entry.subject,
                    "requester_id": entry.requester_id,
                    "attempts": entry.attempts,
                    "reclaimed": entry.reclaimed,
                    "state": EntryState.processing.value,
                }
            },
        )

        outcome: DeliveryOutcome | None = None
        result = "unresolved"
        try:
            self._handle(entry)
            outcome = delivered()
        except Exception as e:
            outcome = classify(e)
            log.error(
                "dispatch_failed",
                extra={
                    "payload": {
                        "entry_id": entry.entry_id,
                        "subject": entry.subject,
                        "requester_id": entry.requester_id,
                        "state": outcome.state.value,
                        "error_kind": outcome.error_kind.value if outcome.error_kind else None,
                        "err": str(e)[:200],
                    }
                },
            )
        finally:
            if outcome is None:
                outcome = _interrupted()
            if not entry.resolved:
                result = self._resolve(entry, outcome)
                QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=entry.stream, result=result).inc()

        log.info(
            "dispatch_resolved",
            extra={
                "payload": {
                    "entry_id": entry.entry_id,
                    "state": outcome.state.value,
                    "resolution": result,
                }
            },
        )

        if self.notify_on_failure and result in {"drop", "dead_letter"}:
            self._notify_failure(entry, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Цикл
    # ------------------------------------------------------------------
    def run_once(self, *, block_ms: int | None = None) -> DeliveryOutcome | None:
        entry = consume_dispatch(consumer=self.consumer, block_ms=block_ms)
        if entry is None:
            return None
        return self.process_entry(entry)

    def run_loop(self, *, should_stop: Callable[[], bool] | None = None) -> None:
        log.info(
            "worker_dispatch_started",
            extra={
                "payload": {
                    "consumer": self.consumer,
                    "analysis": getattr(self.analysis, "name", "unknown"),
                    "delivery": getattr(self.delivery, "name", "unknown"),
                }
            },
        )
        while not (should_stop and should_stop()):
            self.run_once()
