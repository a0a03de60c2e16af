"""
Telegram webhook.

POST /v1/telegram/webhook

Ответ на команду возвращаем прямо в теле ответа webhook
(method=sendMessage), без отдельного вызова Bot API.
Авторизация: X-Telegram-Bot-Api-Secret-Token.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import command_service_dep, webhook_secret_dep
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.contracts.http_api import TelegramUpdate
from pagespeed_dispatch.services.commands import CommandService

log = get_project_logger()

router = APIRouter()

SOMETHING_WENT_WRONG = "Something went wrong. Please try again later."


@router.post("/telegram/webhook", dependencies=[Depends(webhook_secret_dep)])
def telegram_webhook(
    update: TelegramUpdate,
    commands: CommandService = Depends(command_service_dep),
) -> dict[str, Any]:
    msg = update.message
    if msg is None or not msg.text:
        return {"ok": True}

    chat_id = msg.chat.id
    try:
        reply = commands.handle(requester_id=chat_id, text=msg.text)
    except Exception as e:
        # 5xx заставит Telegram повторять update; отвечаем пользователю сами
        log.error(
            "telegram_command_failed",
            extra={
                "payload": {
                    "update_id": update.update_id,
                    "chat_id": chat_id,
                    "err": str(e)[:200],
                }
            },
        )
        reply = SOMETHING_WENT_WRONG

    if reply is None:
        return {"ok": True}
    return {"method": "sendMessage", "chat_id": chat_id, "text": reply}
