from __future__ import annotations

import pytest

from pagespeed_dispatch.common.errors import ValidationError
from pagespeed_dispatch.storage.repositories import ScheduleRepository


def test_create_and_list(session_factory):
    with session_factory() as s:
        repo = ScheduleRepository(s)
        a = repo.create(requester_id=1, subject="https://a.io", hour=9, minute=30)
        b = repo.create(requester_id=2, subject="https://b.io", hour=7, minute=0)

    with session_factory() as s:
        items = ScheduleRepository(s).list_all()

    assert [x.id for x in items] == [a.id, b.id]
    assert items[0].subject == "https://a.io"
    assert items[0].requester_id == 1
    assert items[0].hhmm == "09:30"


def test_same_slot_is_idempotent(session_factory):
    with session_factory() as s:
        repo = ScheduleRepository(s)
        first = repo.create(requester_id=1, subject="https://a.io", hour=9, minute=30)
        second = repo.create(requester_id=1, subject="https://a.io", hour=9, minute=30)
        other = repo.create(requester_id=1, subject="https://a.io", hour=9, minute=31)

    assert first.id == second.id
    assert other.id != first.id


def test_create_rejects_out_of_range_time(session_factory):
    with session_factory() as s, pytest.raises(ValidationError):
        ScheduleRepository(s).create(requester_id=1, subject="https://a.io", hour=24, minute=0)


def test_list_by_requester_sorted_by_time(session_factory):
    with session_factory() as s:
        repo = ScheduleRepository(s)
        repo.create(requester_id=1, subject="https://late.io", hour=18, minute=0)
        repo.create(requester_id=1, subject="https://early.io", hour=6, minute=15)
        repo.create(requester_id=2, subject="https://other.io", hour=1, minute=0)

    with session_factory() as s:
        items = ScheduleRepository(s).list_by_requester(1)

    assert [x.subject for x in items] == ["https://early.io", "https://late.io"]


def test_delete_respects_owner(session_factory):
    with session_factory() as s:
        sched = ScheduleRepository(s).create(
            requester_id=1, subject="https://a.io", hour=9, minute=30
        )

    with session_factory() as s:
        assert ScheduleRepository(s).delete(sched.id, requester_id=2) is False
    with session_factory() as s:
        assert ScheduleRepository(s).delete(sched.id, requester_id=1) is True
    with session_factory() as s:
        assert ScheduleRepository(s).get(sched.id) is None
        assert ScheduleRepository(s).delete(sched.id) is False
