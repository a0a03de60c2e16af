"""
Доставка через Telegram Bot API.

Назначение:
- отправка PDF (sendDocument) и текстовых уведомлений (sendMessage)
- классификация ответов Bot API: постоянный сбой или временный

Важно:
- не логировать токен бота и содержимое документов
- логировать только метаданные (кому, статус, message_id)
"""

from __future__ import annotations

import requests

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.errors import ErrCode
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.delivery.base import DeliveryResult
from pagespeed_dispatch.delivery.results import fail_result, ok_result

log = get_project_logger()

PROVIDER = "telegram"

# Фразы из description Bot API: получатель недоступен навсегда
_RECIPIENT_GONE_MARKERS: tuple[str, ...] = (
    "chat not found",
    "user not found",
    "bot was blocked",
    "user is deactivated",
    "bot was kicked",
    "peer_id_invalid",
    "have no rights to send",
)


def classify_response(status: int, description: str) -> tuple[str, bool]:
    """
    (error_code, permanent) для неуспешного ответа Bot API.
    """
    text = (description or "").lower()
    if status == 403 or any(m in text for m in _RECIPIENT_GONE_MARKERS):
        return ErrCode.RECIPIENT_UNREACHABLE, True
    if status in {400, 413}:
        return ErrCode.PAYLOAD_REJECTED, True
    # 401/404 (токен), 429, 5xx -> повтор
    return ErrCode.DELIVERY_TRANSIENT, False


class TelegramDeliveryProvider:
    name = PROVIDER

    def __init__(
        self,
        *,
        token: str | None = None,
        api_base: str | None = None,
        timeout_sec: int | None = None,
    ) -> None:
        s = get_settings()
        self.token = token if token is not None else (s.telegram_bot_api_key or "")
        self.api_base = (api_base or s.telegram_api_base).rstrip("/")
        self.timeout_sec = int(timeout_sec or s.telegram_timeout_sec)

    def _url(self, method: str) -> str:
        return f"{self.api_base}/bot{self.token}/{method}"

    def _call(
        self,
        method: str,
        *,
        requester_id: int,
        data: dict,
        files: dict | None = None,
    ) -> DeliveryResult:
        if not self.token:
            return fail_result(PROVIDER, "TELEGRAM_BOT_API_KEY_not_set")

        try:
            resp = requests.post(
                self._url(method), data=data, files=files, timeout=self.timeout_sec
            )
        except requests.RequestException as e:
            log.error(
                "telegram_http_error",
                extra={
                    "payload": {"method": method, "requester_id": requester_id, "err": str(e)[:200]}
                },
            )
            return fail_result(PROVIDER, "http_error", meta={"err": str(e)[:200]})

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code < 400 and body.get("ok"):
            message_id = (body.get("result") or {}).get("message_id")
            log.info(
                "telegram_sent",
                extra={
                    "payload": {
                        "method": method,
                        "requester_id": requester_id,
                        "message_id": message_id,
                    }
                },
            )
            return ok_result(PROVIDER, message_id=str(message_id) if message_id else None)

        description = str(body.get("description") or resp.text[:300] or "")
        error_code, permanent = classify_response(resp.status_code, description)
        log.warning(
            "telegram_send_failed",
            extra={
                "payload": {
                    "method": method,
                    "requester_id": requester_id,
                    "status": resp.status_code,
                    "description": description[:300],
                    "error_code": error_code,
                    "permanent": permanent,
                }
            },
        )
        return fail_result(
            PROVIDER,
            description or f"status_{resp.status_code}",
            error_code=error_code,
            permanent=permanent,
            meta={"status": resp.status_code, "method": method},
        )

    def send_document(
        self,
        *,
        requester_id: int,
        filename: str,
        content: bytes,
        mime: str = "application/pdf",
        caption: str | None = None,
    ) -> DeliveryResult:
        data = {"chat_id": str(requester_id)}
        if caption:
            data["caption"] = caption[:1024]
        return self._call(
            "sendDocument",
            requester_id=requester_id,
            data=data,
            files={"document": (filename, content, mime)},
        )

    def send_message(self, *, requester_id: int, text: str) -> DeliveryResult:
        return self._call(
            "sendMessage",
            requester_id=requester_id,
            data={"chat_id": str(requester_id), "text": text[:4096]},
        )
