"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- Telegram webhook (команды бота)
- HTTP API для проверок и расписаний
- admin: состояние очереди
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from apps.api_gateway.routers.admin import router as admin_router
from apps.api_gateway.routers.checks import router as checks_router
from apps.api_gateway.routers.schedules import router as schedules_router
from apps.api_gateway.routers.telegram import router as telegram_router
from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.logging import get_project_logger, setup_logging
from pagespeed_dispatch.common.metrics import setup_metrics_endpoint

log = get_project_logger()


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _create_app() -> FastAPI:
    app = FastAPI(title="PageSpeed Dispatch", version="0.1.0")
    settings = get_settings()

    if _is_prod_env(settings.app_env) and (settings.auth_mode or "").lower() == "none":
        raise RuntimeError("AUTH_MODE=none запрещён в APP_ENV=prod")

    setup_metrics_endpoint(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.on_event("startup")
    def startup_db() -> None:
        from pagespeed_dispatch.storage.db import init_db

        # Миграций нет: недостающие таблицы создаются на старте
        init_db()
        log.info("db_ready")

    app.include_router(telegram_router, prefix="/v1")
    app.include_router(checks_router, prefix="/v1")
    app.include_router(schedules_router, prefix="/v1")
    app.include_router(admin_router, prefix="/v1")

    return app


setup_logging("api-gateway")

app = _create_app()


def main() -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run("apps.api_gateway.main:app", host=s.api_host, port=s.api_port)


if __name__ == "__main__":
    main()
