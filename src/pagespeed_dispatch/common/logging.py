"""
Логирование проекта.

- логирование в stdout (Docker-friendly)
- JSON по умолчанию, текст для локальной отладки (LOG_FORMAT=text)
- каждая JSON-запись несёт имя процесса (service) и окружение (env),
  а ключи корреляции записи очереди поднимаются на верхний уровень,
  чтобы путь одной проверки собирался по логам всех процессов
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from pagespeed_dispatch.common.config import get_settings

# ключи из payload, по которым связываются записи разных процессов
CORRELATION_KEYS = ("event_id", "entry_id", "requester_id", "schedule_id")


class JsonFormatter(logging.Formatter):
    def __init__(self, *, service: str, env: str) -> None:
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "env": self.env,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra_payload = getattr(record, "payload", None)
        if isinstance(extra_payload, dict):
            for key in CORRELATION_KEYS:
                if extra_payload.get(key) is not None:
                    payload[key] = extra_payload[key]
            payload["payload"] = extra_payload
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_formatter(service: str) -> logging.Formatter:
    s = get_settings()
    if (s.log_format or "").lower() == "text":
        return logging.Formatter(
            fmt=f"%(asctime)s %(levelname)s {service} %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return JsonFormatter(service=service, env=s.app_env)


def setup_logging(service: str | None = None) -> None:
    """
    service: имя процесса в логах; по умолчанию SERVICE_NAME.
    """
    s = get_settings()
    root = logging.getLogger()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # Не плодим хэндлеры при повторном вызове
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter(service or s.service_name))
    root.addHandler(handler)

    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)


def get_project_logger(name: str = "pagespeed-dispatch") -> logging.Logger:
    return logging.getLogger(name)
