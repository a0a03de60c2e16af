"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine
- Контекстный менеджер для сессий
- Создание таблиц на старте процесса
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from pagespeed_dispatch.common.config import get_settings

from .models import Base

# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_settings = get_settings()

engine = create_engine(
    _settings.postgres_dsn,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def init_db() -> None:
    """
    Создаёт недостающие таблицы.
    """
    Base.metadata.create_all(bind=engine)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            ScheduleRepository(session).list_all()
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
