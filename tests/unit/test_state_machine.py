from __future__ import annotations

import pytest

from pagespeed_dispatch.common.errors import (
    AnalysisInvalid,
    AnalysisTimeout,
    AnalysisUnreachable,
    BadPayloadError,
    DeliveryFailure,
    ErrCode,
    ReportError,
)
from pagespeed_dispatch.domain.enums import EntryState, FailureKind, Resolution
from pagespeed_dispatch.domain.state_machine import classify, delivered


def test_delivered_is_ack():
    r = delivered()
    assert r.success is True
    assert r.state == EntryState.delivered
    assert r.resolution == Resolution.ack


@pytest.mark.parametrize(
    ("exc", "resolution", "kind"),
    [
        (AnalysisTimeout(), Resolution.requeue, FailureKind.timeout),
        (AnalysisUnreachable(), Resolution.requeue, FailureKind.unreachable),
        (AnalysisInvalid(), Resolution.drop, FailureKind.invalid),
        (ReportError(), Resolution.drop, FailureKind.report),
        (BadPayloadError(), Resolution.drop, FailureKind.bad_payload),
        (DeliveryFailure(), Resolution.requeue, FailureKind.delivery_transient),
        (
            DeliveryFailure(ErrCode.RECIPIENT_UNREACHABLE, "gone", permanent=True),
            Resolution.drop,
            FailureKind.recipient_unreachable,
        ),
        (
            DeliveryFailure(ErrCode.PAYLOAD_REJECTED, "rejected", permanent=True),
            Resolution.drop,
            FailureKind.payload_rejected,
        ),
        (ValueError("surprise"), Resolution.requeue, FailureKind.unexpected),
    ],
)
def test_classify(exc, resolution, kind):
    r = classify(exc)
    assert r.success is False
    assert r.resolution == resolution
    assert r.error_kind == kind
    expected_state = EntryState.fatal if resolution == Resolution.drop else EntryState.retryable
    assert r.state == expected_state
