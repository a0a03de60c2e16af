"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (X-API-Key)
- проверку секрета Telegram webhook
- фабрику сессий БД и сервис команд (подменяются в тестах)
"""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from pagespeed_dispatch.common.errors import UnauthorizedError
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.common.security import AuthContext, require_auth, verify_webhook_secret
from pagespeed_dispatch.services.commands import CommandService

log = get_project_logger()


def _request_meta(request: Request | None) -> tuple[str, str, str | None]:
    if request is None:
        return "unknown", "UNKNOWN", None
    endpoint = request.url.path
    method = request.method
    client_ip = request.client.host if request.client else None
    return endpoint, method, client_ip


def _audit_deny(*, request: Request | None, reason: str, error_code: str) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status.HTTP_401_UNAUTHORIZED,
                "reason": reason,
                "error_code": error_code,
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP API.
    """
    try:
        return require_auth(x_api_key=x_api_key)
    except UnauthorizedError as e:
        _audit_deny(request=request, reason=e.message, error_code=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
        ) from e


def webhook_secret_dep(
    request: Request,
    token: str | None = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
) -> None:
    try:
        verify_webhook_secret(token)
    except UnauthorizedError as e:
        _audit_deny(request=request, reason=e.message, error_code=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
        ) from e


def session_dep() -> Iterator[Session]:
    from pagespeed_dispatch.storage.db import db_session

    with db_session() as session:
        yield session


def command_service_dep() -> CommandService:
    return CommandService()
