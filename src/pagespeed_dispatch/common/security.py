"""
Утилиты безопасности и авторизации.

Поддерживаемые режимы (AUTH_MODE):
- api_key: проверка X-API-Key
- none: без авторизации (ТОЛЬКО dev)

Отдельно: проверка секрета Telegram webhook
(заголовок X-Telegram-Bot-Api-Secret-Token).
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from .config import get_settings, parse_csv
from .errors import UnauthorizedError


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _key_matches(candidate: str, keys: list[str]) -> bool:
    return any(hmac.compare_digest(candidate, k) for k in keys)


def require_auth(*, x_api_key: str | None) -> AuthContext:
    """
    - AUTH_MODE=none: без проверки (dev)
    - AUTH_MODE=api_key: X-API-Key из API_KEYS
    """
    settings = get_settings()
    mode = (settings.auth_mode or "api_key").lower().strip()

    if mode == "none":
        if _is_prod_env(settings.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none")

    if mode != "api_key":
        raise UnauthorizedError("Неизвестный режим авторизации")

    keys = parse_csv(settings.api_keys)
    if not x_api_key or not keys or not _key_matches(x_api_key, keys):
        raise UnauthorizedError("Неверный API ключ")
    return AuthContext(subject="api_key", auth_type="api_key")


def verify_webhook_secret(token: str | None) -> None:
    """
    Секрет не задан -> проверка выключена (dev), кроме APP_ENV=prod.
    """
    settings = get_settings()
    expected = settings.telegram_webhook_secret or ""
    if not expected:
        if _is_prod_env(settings.app_env):
            raise UnauthorizedError("TELEGRAM_WEBHOOK_SECRET обязателен в APP_ENV=prod")
        return
    if not token or not hmac.compare_digest(token, expected):
        raise UnauthorizedError("Неверный секрет webhook")
