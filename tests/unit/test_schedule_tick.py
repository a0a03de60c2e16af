from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from pagespeed_dispatch.domain.enums import DispatchSource
from pagespeed_dispatch.domain.schedule import Schedule
from pagespeed_dispatch.jobs.schedule_tick import run
from pagespeed_dispatch.queue.dispatcher import consume_dispatch, dispatch_queue

TEHRAN = ZoneInfo("Asia/Tehran")


def _schedule(sid: int, hour: int, minute: int, *, requester_id: int = 100) -> Schedule:
    return Schedule(
        id=sid,
        requester_id=requester_id,
        subject=f"https://example.com/{sid}",
        hour=hour,
        minute=minute,
    )


class _Recorder:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.calls: list[dict] = []
        self.fail_for = fail_for or set()

    def __call__(self, **kwargs) -> str:
        if kwargs["subject"] in self.fail_for:
            raise RuntimeError("queue down")
        self.calls.append(kwargs)
        return f"chk_{len(self.calls)}"


@pytest.mark.parametrize(("minute", "expected"), [(30, 1), (31, 0), (29, 0)])
def test_matches_exact_minute_only(minute, expected):
    rec = _Recorder()
    now = datetime(2024, 5, 1, 9, minute, 15, tzinfo=TEHRAN)

    res = run(now=now, load_schedules=lambda: [_schedule(1, 9, 30)], enqueue=rec)

    assert res is not None
    assert res.matched == expected
    assert len(rec.calls) == expected


def test_hour_must_match_too():
    rec = _Recorder()
    now = datetime(2024, 5, 1, 21, 30, tzinfo=TEHRAN)
    run(now=now, load_schedules=lambda: [_schedule(1, 9, 30)], enqueue=rec)
    assert rec.calls == []


def test_now_is_converted_to_schedule_timezone():
    rec = _Recorder()
    # Asia/Tehran = UTC+03:30
    now_utc = datetime(2024, 5, 1, 6, 0, tzinfo=UTC)

    res = run(now=now_utc, load_schedules=lambda: [_schedule(1, 9, 30)], enqueue=rec)

    assert res.matched == 1
    assert rec.calls[0]["source"] is DispatchSource.schedule
    assert rec.calls[0]["requester_id"] == 100


def test_double_tick_in_same_minute_dispatches_twice():
    rec = _Recorder()
    now = datetime(2024, 5, 1, 9, 30, tzinfo=TEHRAN)
    schedules = [_schedule(1, 9, 30)]

    run(now=now, load_schedules=lambda: schedules, enqueue=rec)
    run(now=now, load_schedules=lambda: schedules, enqueue=rec)

    assert len(rec.calls) == 2


def test_failed_enqueue_does_not_block_other_schedules():
    rec = _Recorder(fail_for={"https://example.com/1"})
    now = datetime(2024, 5, 1, 9, 30, tzinfo=TEHRAN)
    schedules = [_schedule(1, 9, 30), _schedule(2, 9, 30), _schedule(3, 10, 0)]

    res = run(now=now, load_schedules=lambda: schedules, enqueue=rec)

    assert res.scanned == 3
    assert res.matched == 2
    assert res.failed == 1
    assert res.enqueued == 1
    assert [c["subject"] for c in rec.calls] == ["https://example.com/2"]


def test_store_unavailable_skips_tick():
    rec = _Recorder()

    def _broken():
        raise ConnectionError("db down")

    res = run(now=datetime(2024, 5, 1, 9, 30, tzinfo=TEHRAN), load_schedules=_broken, enqueue=rec)

    assert res is None
    assert rec.calls == []


def test_disabled_scheduler_skips_tick(settings):
    settings.schedule_enabled = False
    rec = _Recorder()

    res = run(
        now=datetime(2024, 5, 1, 9, 30, tzinfo=TEHRAN),
        load_schedules=lambda: [_schedule(1, 9, 30)],
        enqueue=rec,
    )

    assert res is None
    assert rec.calls == []


def test_tick_enqueues_into_dispatch_queue(fake_redis):
    now = datetime(2024, 5, 1, 9, 30, tzinfo=TEHRAN)

    res = run(now=now, load_schedules=lambda: [_schedule(5, 9, 30, requester_id=555)])

    assert res.enqueued == 1
    stream, _ = dispatch_queue()
    _, fields = fake_redis.entries(stream)[0]
    assert fields["source"] == "schedule"
    entry = consume_dispatch(consumer="w1", block_ms=0)
    assert entry.subject == "https://example.com/5"
    assert entry.requester_id == 555
