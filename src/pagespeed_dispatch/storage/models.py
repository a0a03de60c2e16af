"""
ORM-модели базы данных.

Назначение:
- Хранение расписаний ежедневных проверок (переживают рестарт процесса)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pagespeed_dispatch.common.time import utc_now


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# SCHEDULED REPORT
# =============================================================================
class ScheduledReport(Base):
    """
    Ежедневная проверка URL в HH:MM (таймзона SCHEDULE_TIMEZONE).
    """

    __tablename__ = "scheduled_reports"
    __table_args__ = (
        UniqueConstraint("chat_id", "url", "hour", "minute", name="uq_scheduled_reports_slot"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Telegram chat id может выходить за int32
    chat_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    minute: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
