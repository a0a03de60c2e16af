"""
Redis-клиент для очереди задач.

Назначение:
- Единая точка подключения к Redis
- Используется продюсерами (бот/API/планировщик) и воркером
"""

from __future__ import annotations

import redis

from pagespeed_dispatch.common.config import get_settings

_client: redis.Redis | None = None


def redis_client() -> redis.Redis:
    """
    Singleton Redis client.
    """
    global _client
    if _client is None:
        _client = redis.Redis.from_url(get_settings().redis_url, decode_responses=True)
    return _client
