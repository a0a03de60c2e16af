from __future__ import annotations

import pytest

from pagespeed_dispatch.analysis.base import AnalysisReport
from pagespeed_dispatch.analysis.browser import BrowserSlot, ChromeInstance
from pagespeed_dispatch.common.errors import (
    AnalysisInvalid,
    AnalysisTimeout,
    ErrCode,
    ReportError,
)
from pagespeed_dispatch.delivery.results import fail_result, ok_result
from pagespeed_dispatch.domain.enums import EntryState, FailureKind, Resolution
from pagespeed_dispatch.queue.dispatcher import dispatch_queue, enqueue_dispatch
from pagespeed_dispatch.queue.streams import stream_dlq_name
from pagespeed_dispatch.services.dispatch_worker import DispatchWorker


def _report(url: str) -> AnalysisReport:
    return AnalysisReport(
        url=url,
        performance_score=91.0,
        speed_index="1.0 s",
        first_contentful_paint="0.7 s",
        largest_contentful_paint="1.4 s",
        time_to_interactive="1.6 s",
        provider="fake",
    )


class _FakeAnalysis:
    name = "fake"

    def __init__(self, error: Exception | None = None, on_call=None) -> None:
        self.error = error
        self.on_call = on_call
        self.subjects: list[str] = []

    def analyze(self, subject: str) -> AnalysisReport:
        self.subjects.append(subject)
        if self.on_call:
            self.on_call(subject)
        if self.error:
            raise self.error
        return _report(subject)


class _FakeDelivery:
    name = "fake"

    def __init__(self, document_result=None) -> None:
        self.document_result = document_result
        self.documents: list[dict] = []
        self.messages: list[dict] = []

    def send_document(self, **kwargs):
        self.documents.append(kwargs)
        return self.document_result or ok_result("fake", message_id="m1")

    def send_message(self, **kwargs):
        self.messages.append(kwargs)
        return ok_result("fake", message_id="m2")


def _worker(analysis, delivery, *, notify: bool = False) -> DispatchWorker:
    return DispatchWorker(
        analysis=analysis,
        delivery=delivery,
        consumer="w-test",
        notify_on_failure=notify,
        report_filename="report.pdf",
    )


def _pending(fake_redis) -> list[str]:
    stream, group = dispatch_queue()
    return fake_redis.pending_ids(stream, group)


def _dlq(fake_redis):
    stream, _ = dispatch_queue()
    return fake_redis.entries(stream_dlq_name(stream))


def test_success_delivers_pdf_then_acks(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery()

    outcome = _worker(_FakeAnalysis(), delivery).run_once(block_ms=0)

    assert outcome.success is True
    assert outcome.resolution is Resolution.ack
    assert outcome.state is EntryState.delivered
    doc = delivery.documents[0]
    assert doc["requester_id"] == 42
    assert doc["filename"] == "report.pdf"
    assert doc["content"].startswith(b"%PDF")
    assert "https://example.com" in doc["caption"]
    assert _pending(fake_redis) == []
    assert _dlq(fake_redis) == []


def test_ack_happens_after_delivery(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    seen_pending = []

    class _Delivery(_FakeDelivery):
        def send_document(self, **kwargs):
            seen_pending.append(list(_pending(fake_redis)))
            return super().send_document(**kwargs)

    _worker(_FakeAnalysis(), _Delivery()).run_once(block_ms=0)

    assert len(seen_pending[0]) == 1
    assert _pending(fake_redis) == []


def test_next_entry_not_read_while_current_in_progress(fake_redis):
    enqueue_dispatch(subject="https://example.com/1", requester_id=1)
    enqueue_dispatch(subject="https://example.com/2", requester_id=2)
    snapshots = []

    analysis = _FakeAnalysis(on_call=lambda subject: snapshots.append(len(_pending(fake_redis))))
    worker = _worker(analysis, _FakeDelivery())
    worker.run_once(block_ms=0)
    worker.run_once(block_ms=0)

    # во время обработки в группе ровно одна выданная запись
    assert snapshots == [1, 1]
    assert analysis.subjects == ["https://example.com/1", "https://example.com/2"]


def test_analysis_timeout_is_requeued(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)

    outcome = _worker(_FakeAnalysis(AnalysisTimeout()), _FakeDelivery()).run_once(block_ms=0)

    assert outcome.resolution is Resolution.requeue
    assert outcome.error_kind is FailureKind.timeout
    stream, _ = dispatch_queue()
    entries = fake_redis.entries(stream)
    assert len(entries) == 2
    assert entries[-1][1]["attempts"] == "1"
    assert _pending(fake_redis) == []


def test_unexpected_error_is_requeued(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)

    outcome = _worker(_FakeAnalysis(KeyError("boom")), _FakeDelivery()).run_once(block_ms=0)

    assert outcome.resolution is Resolution.requeue
    assert outcome.error_kind is FailureKind.unexpected


def test_invalid_subject_is_dropped_without_notice_by_default(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery()

    outcome = _worker(_FakeAnalysis(AnalysisInvalid()), delivery).run_once(block_ms=0)

    assert outcome.resolution is Resolution.drop
    assert outcome.state is EntryState.fatal
    assert _dlq(fake_redis)[0][1]["dlq_reason"] == "invalid"
    assert delivery.documents == []
    assert delivery.messages == []


def test_fatal_failure_notifies_requester_when_enabled(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery()

    _worker(_FakeAnalysis(AnalysisInvalid()), delivery, notify=True).run_once(block_ms=0)

    assert len(delivery.messages) == 1
    assert delivery.messages[0]["requester_id"] == 42
    assert "https://example.com" in delivery.messages[0]["text"]


def test_exhausted_retries_notify_requester(fake_redis, settings):
    settings.queue_max_attempts = 1
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery()

    _worker(_FakeAnalysis(AnalysisTimeout()), delivery, notify=True).run_once(block_ms=0)

    assert _dlq(fake_redis)[0][1]["dlq_reason"].startswith("max_attempts_exceeded")
    assert len(delivery.messages) == 1


def test_retryable_failure_does_not_notify(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery()

    _worker(_FakeAnalysis(AnalysisTimeout()), delivery, notify=True).run_once(block_ms=0)

    assert delivery.messages == []


def test_recipient_gone_is_fatal_and_not_notified(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery(
        fail_result(
            "fake",
            "Forbidden: bot was blocked by the user",
            error_code=ErrCode.RECIPIENT_UNREACHABLE,
            permanent=True,
        )
    )

    outcome = _worker(_FakeAnalysis(), delivery, notify=True).run_once(block_ms=0)

    assert outcome.resolution is Resolution.drop
    assert outcome.error_kind is FailureKind.recipient_unreachable
    assert delivery.messages == []


def test_transient_delivery_failure_is_requeued(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)
    delivery = _FakeDelivery(fail_result("fake", "Too Many Requests"))

    outcome = _worker(_FakeAnalysis(), delivery).run_once(block_ms=0)

    assert outcome.resolution is Resolution.requeue
    assert outcome.error_kind is FailureKind.delivery_transient


def test_report_error_is_fatal(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)

    class _BrokenRenderer:
        content_type = "application/pdf"

        def render(self, report):
            raise ReportError()

        def caption(self, report):
            return ""

    worker = _worker(_FakeAnalysis(), _FakeDelivery())
    worker.renderer = _BrokenRenderer()
    outcome = worker.run_once(block_ms=0)

    assert outcome.resolution is Resolution.drop
    assert outcome.error_kind is FailureKind.report


def test_notification_failure_does_not_change_resolution(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)

    class _Delivery(_FakeDelivery):
        def send_message(self, **kwargs):
            raise ConnectionError("telegram down")

    outcome = _worker(_FakeAnalysis(AnalysisInvalid()), _Delivery(), notify=True).run_once(
        block_ms=0
    )

    assert outcome.resolution is Resolution.drop
    assert len(_dlq(fake_redis)) == 1


def test_interrupt_still_resolves_entry(fake_redis):
    enqueue_dispatch(subject="https://example.com", requester_id=42)

    class _Interrupt(BaseException):
        pass

    with pytest.raises(_Interrupt):
        _worker(_FakeAnalysis(_Interrupt()), _FakeDelivery()).run_once(block_ms=0)

    stream, _ = dispatch_queue()
    assert _pending(fake_redis) == []
    assert len(fake_redis.entries(stream)) == 2


def test_browser_slot_is_free_before_next_entry(fake_redis):
    enqueue_dispatch(subject="https://example.com/1", requester_id=1)
    enqueue_dispatch(subject="https://example.com/2", requester_id=2)

    killed = []

    class _Chrome(ChromeInstance):
        def kill(self) -> None:
            killed.append(self.port)

    slot = BrowserSlot(launcher=lambda: _Chrome(port=9222))
    busy_at_start = []

    class _SlotAnalysis:
        name = "slot"

        def analyze(self, subject: str) -> AnalysisReport:
            busy_at_start.append(slot.busy)
            with slot.acquire():
                raise AnalysisTimeout()

    worker = _worker(_SlotAnalysis(), _FakeDelivery())
    worker.run_once(block_ms=0)
    worker.run_once(block_ms=0)

    assert busy_at_start == [False, False]
    assert killed == [9222, 9222]
    assert slot.busy is False
