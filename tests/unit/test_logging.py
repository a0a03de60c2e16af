from __future__ import annotations

import json
import logging

from pagespeed_dispatch.common.logging import JsonFormatter


def _record(msg: str, payload: dict | None = None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="pagespeed-dispatch",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if payload is not None:
        record.payload = payload
    return record


def test_json_record_carries_service_and_env():
    fmt = JsonFormatter(service="worker-dispatch", env="prod")

    data = json.loads(fmt.format(_record("worker_dispatch_started")))

    assert data["service"] == "worker-dispatch"
    assert data["env"] == "prod"
    assert data["msg"] == "worker_dispatch_started"
    assert data["ts"].endswith("Z")


def test_correlation_keys_are_lifted_from_payload():
    fmt = JsonFormatter(service="worker-dispatch", env="dev")
    payload = {"entry_id": "1-0", "requester_id": 42, "event_id": None, "stage": "analysis"}

    data = json.loads(fmt.format(_record("entry_processing", payload)))

    assert data["entry_id"] == "1-0"
    assert data["requester_id"] == 42
    assert "event_id" not in data
    assert "stage" not in data
    assert data["payload"] == payload
