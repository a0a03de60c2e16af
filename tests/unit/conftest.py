from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pytest
from redis.exceptions import ResponseError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.queue import redis as queue_redis
from pagespeed_dispatch.queue import streams
from pagespeed_dispatch.storage.models import Base


class _FakeRedis:
    """
    Redis Streams + consumer groups в памяти.
    Время idle для XAUTOCLAIM управляется через now_ms.
    """

    def __init__(self) -> None:
        self.now_ms = 0
        self._seq = 0
        self.streams: dict[str, list[tuple[str, dict[str, str]]]] = {}
        # (stream, group) -> {"cursor": int, "pending": {entry_id: {"consumer", "since", "deliveries"}}}
        self.groups: dict[tuple[str, str], dict] = {}

    # --- stream ---------------------------------------------------------
    def xadd(self, name: str, fields: dict) -> str:
        self._seq += 1
        entry_id = f"{self._seq}-0"
        self.streams.setdefault(name, []).append((entry_id, {k: str(v) for k, v in fields.items()}))
        return entry_id

    def xlen(self, name: str) -> int:
        return len(self.streams.get(name, []))

    def entries(self, name: str) -> list[tuple[str, dict[str, str]]]:
        return list(self.streams.get(name, []))

    # --- groups ---------------------------------------------------------
    def xgroup_create(self, name: str, groupname: str, id: str = "$", mkstream: bool = False):
        if (name, groupname) in self.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        if mkstream:
            self.streams.setdefault(name, [])
        cursor = 0 if id == "0" else len(self.streams.get(name, []))
        self.groups[(name, groupname)] = {"cursor": cursor, "pending": {}}
        return True

    def _group(self, name: str, groupname: str) -> dict:
        group = self.groups.get((name, groupname))
        if group is None:
            raise ResponseError("NOGROUP No such key or consumer group")
        return group

    def xreadgroup(self, groupname: str, consumername: str, streams: dict, count=None, block=None):
        out = []
        for name, start in streams.items():
            assert start == ">"
            group = self._group(name, groupname)
            items = self.streams.get(name, [])[group["cursor"] :]
            if count is not None:
                items = items[:count]
            if not items:
                continue
            group["cursor"] += len(items)
            for entry_id, _ in items:
                group["pending"][entry_id] = {
                    "consumer": consumername,
                    "since": self.now_ms,
                    "deliveries": 1,
                }
            out.append([name, [(eid, dict(f)) for eid, f in items]])
        return out

    def xack(self, name: str, groupname: str, *ids: str) -> int:
        group = self._group(name, groupname)
        removed = 0
        for entry_id in ids:
            if group["pending"].pop(entry_id, None) is not None:
                removed += 1
        return removed

    def xautoclaim(
        self, name, groupname, consumername, min_idle_time, start_id="0-0", count=None
    ):
        group = self._group(name, groupname)
        by_id = dict(self.streams.get(name, []))
        claimed = []
        for entry_id in sorted(group["pending"], key=lambda x: int(x.split("-")[0])):
            info = group["pending"][entry_id]
            if self.now_ms - info["since"] < min_idle_time:
                continue
            info.update({"consumer": consumername, "since": self.now_ms})
            info["deliveries"] += 1
            claimed.append((entry_id, dict(by_id.get(entry_id) or {})))
            if count is not None and len(claimed) >= count:
                break
        return ["0-0", claimed, []]

    def xpending(self, name: str, groupname: str) -> dict:
        group = self._group(name, groupname)
        return {"pending": len(group["pending"])}

    def xpending_range(self, name, groupname, min, max, count, consumername=None, idle=None):
        group = self._group(name, groupname)
        info = group["pending"].get(min)
        if info is None:
            return []
        return [
            {
                "message_id": min,
                "consumer": info["consumer"],
                "time_since_delivered": self.now_ms - info["since"],
                "times_delivered": info["deliveries"],
            }
        ]

    def pending_ids(self, name: str, groupname: str) -> list[str]:
        return list(self._group(name, groupname)["pending"])


@pytest.fixture(autouse=True)
def settings():
    s = get_settings()
    snapshot = {k: getattr(s, k) for k in type(s).model_fields}
    s.queue_requeue_backoff_sec = 0.0
    s.queue_max_attempts = 5
    s.auth_mode = "api_key"
    s.api_keys = "test-key"
    s.telegram_webhook_secret = None
    s.notify_requester_on_failure = False
    s.schedule_enabled = True
    s.schedule_timezone = "Asia/Tehran"
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


@pytest.fixture()
def fake_redis(monkeypatch) -> Iterator[_FakeRedis]:
    fake = _FakeRedis()
    monkeypatch.setattr(queue_redis, "_client", fake)
    streams._KNOWN_GROUPS.clear()
    try:
        yield fake
    finally:
        streams._KNOWN_GROUPS.clear()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def _session() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    try:
        yield _session
    finally:
        engine.dispose()
