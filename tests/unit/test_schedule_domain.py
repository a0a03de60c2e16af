from __future__ import annotations

from datetime import datetime

import pytest

from pagespeed_dispatch.common.errors import ValidationError
from pagespeed_dispatch.common.time import local_now, seconds_until_next_minute
from pagespeed_dispatch.domain.schedule import Schedule, is_due, parse_hhmm


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("9:05", (9, 5)), ("09:05", (9, 5)), ("23:59", (23, 59)), ("0:0", (0, 0))],
)
def test_parse_hhmm_valid(raw, expected):
    assert parse_hhmm(raw) == expected


@pytest.mark.parametrize("raw", ["", "9", "9:5:1", "24:00", "12:60", "ab:cd", "-1:30", None])
def test_parse_hhmm_invalid(raw):
    with pytest.raises(ValidationError):
        parse_hhmm(raw)


def test_is_due_requires_exact_hour_and_minute():
    s = Schedule(id=1, requester_id=1, subject="https://x.io", hour=9, minute=30)
    assert is_due(s, datetime(2024, 1, 1, 9, 30, 59))
    assert not is_due(s, datetime(2024, 1, 1, 9, 31))
    assert not is_due(s, datetime(2024, 1, 1, 10, 30))
    assert s.hhmm == "09:30"


def test_local_now_treats_naive_as_utc():
    res = local_now("Asia/Tehran", now=datetime(2024, 5, 1, 6, 0))
    assert (res.hour, res.minute) == (9, 30)


def test_seconds_until_next_minute():
    assert seconds_until_next_minute(datetime(2024, 1, 1, 9, 30, 45)) == pytest.approx(15.0)
    assert seconds_until_next_minute(datetime(2024, 1, 1, 9, 30, 0)) == pytest.approx(60.0)
