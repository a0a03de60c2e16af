"""
HTTP API контракты (Pydantic-модели).

Назначение:
- валидация входа/выхода на уровне FastAPI
- стабильные структуры для клиентов
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

HTTP_API_VERSION = "v1"


# =============================================================================
# ЗАПРОСЫ
# =============================================================================
class CheckRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=2048)
    requester_id: int


class ScheduleCreateRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=2048)
    requester_id: int
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)


class TelegramChat(BaseModel):
    id: int


class TelegramMessage(BaseModel):
    message_id: int | None = None
    chat: TelegramChat
    text: str | None = None


class TelegramUpdate(BaseModel):
    """Минимальная часть Update из Bot API (остальные поля игнорируем)."""

    update_id: int
    message: TelegramMessage | None = None


# =============================================================================
# ОТВЕТЫ
# =============================================================================
class CheckResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    event_id: str
    status: str = "queued"


class ScheduleResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    id: int
    requester_id: int
    subject: str
    hour: int
    minute: int
    time: str
    created_at: datetime | None = None


class ScheduleListResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    schedules: list[ScheduleResponse]


class QueueHealthItem(BaseModel):
    queue: str
    group: str
    depth: int
    pending: int
    dlq_depth: int


class QueueHealthResponse(BaseModel):
    queues: list[QueueHealthItem]
