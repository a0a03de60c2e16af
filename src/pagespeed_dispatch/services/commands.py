"""
Команды чат-бота.

Назначение:
- разбор текста сообщения в команду (/check, /schedule, ...)
- постановка проверок в очередь и запись расписаний
- ответ пользователю одним текстом

Команды:
/start, /help, /check <URL>, /schedule <URL> <HH:MM>, /schedules, /unschedule <ID>
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass

from sqlalchemy.orm import Session

from pagespeed_dispatch.analysis.base import validate_subject
from pagespeed_dispatch.common.errors import AnalysisInvalid, TransportError, ValidationError
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.domain.enums import DispatchSource
from pagespeed_dispatch.domain.schedule import parse_hhmm
from pagespeed_dispatch.queue.dispatcher import enqueue_dispatch
from pagespeed_dispatch.storage.repositories import ScheduleRepository

log = get_project_logger()

SessionFactory = Callable[[], AbstractContextManager[Session]]

WELCOME = "Welcome! Use /help to see the available commands."
HELP = (
    "Available commands:\n"
    "/start - Start the bot\n"
    "/help - Show this help message\n"
    "/check <URL> - Check the page speed of a website\n"
    "/schedule <URL> <HH:MM> - Schedule a daily report for the specified URL "
    "at the specified hour and minute (24-hour format)\n"
    "/schedules - List your scheduled reports\n"
    "/unschedule <ID> - Remove a scheduled report"
)
PROVIDE_URL = "Please provide a URL."
INVALID_URL = "Please provide a valid http(s) URL."
QUEUED = "Your request has been queued. You will receive the report shortly."
QUEUE_FAILED = "Failed to queue your request."
SCHEDULE_USAGE = "Usage: /schedule <URL> <HH:MM>"
SCHEDULE_FAILED = "Failed to save your schedule."
UNSCHEDULE_USAGE = "Usage: /unschedule <ID>"
NO_SCHEDULES = "You have no scheduled reports."
UNKNOWN = "Unknown command. Use /help to see the available commands."


@dataclass(frozen=True)
class Command:
    name: str
    args: tuple[str, ...]


def parse_command(text: str | None) -> Command | None:
    """
    "/check@MyBot https://x" -> Command("check", ("https://x",)).
    Не команда -> None.
    """
    parts = (text or "").split()
    if not parts or not parts[0].startswith("/"):
        return None
    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None
    return Command(name=name, args=tuple(parts[1:]))


def _default_session_factory() -> AbstractContextManager[Session]:
    from pagespeed_dispatch.storage.db import db_session

    return db_session()


class CommandService:
    def __init__(
        self,
        *,
        session_factory: SessionFactory | None = None,
        enqueue: Callable[..., str] | None = None,
    ) -> None:
        self.session_factory = session_factory or _default_session_factory
        self.enqueue = enqueue or enqueue_dispatch

    def handle(self, *, requester_id: int, text: str | None) -> str | None:
        cmd = parse_command(text)
        if cmd is None:
            return None

        handler = {
            "start": self._start,
            "help": self._help,
            "check": self._check,
            "schedule": self._schedule,
            "schedules": self._schedules,
            "unschedule": self._unschedule,
        }.get(cmd.name)
        if handler is None:
            return UNKNOWN

        log.info(
            "bot_command",
            extra={"payload": {"command": cmd.name, "requester_id": requester_id}},
        )
        return handler(requester_id, cmd.args)

    def _start(self, requester_id: int, args: tuple[str, ...]) -> str:
        return WELCOME

    def _help(self, requester_id: int, args: tuple[str, ...]) -> str:
        return HELP

    def _check(self, requester_id: int, args: tuple[str, ...]) -> str:
        if not args:
            return PROVIDE_URL
        try:
            url = validate_subject(args[0])
        except AnalysisInvalid:
            return INVALID_URL
        try:
            self.enqueue(subject=url, requester_id=requester_id, source=DispatchSource.command)
        except TransportError as e:
            log.error(
                "bot_check_enqueue_failed",
                extra={"payload": {"requester_id": requester_id, "err": e.message}},
            )
            return QUEUE_FAILED
        return QUEUED

    def _schedule(self, requester_id: int, args: tuple[str, ...]) -> str:
        if len(args) < 2:
            return SCHEDULE_USAGE
        try:
            url = validate_subject(args[0])
        except AnalysisInvalid:
            return INVALID_URL
        try:
            hour, minute = parse_hhmm(args[1])
        except ValidationError:
            return SCHEDULE_USAGE

        try:
            with self.session_factory() as session:
                schedule = ScheduleRepository(session).create(
                    requester_id=requester_id, subject=url, hour=hour, minute=minute
                )
        except Exception as e:
            log.error(
                "bot_schedule_store_failed",
                extra={"payload": {"requester_id": requester_id, "err": str(e)[:200]}},
            )
            return SCHEDULE_FAILED
        return f"Scheduled daily report for {schedule.subject} at {schedule.hhmm} (id {schedule.id})."

    def _schedules(self, requester_id: int, args: tuple[str, ...]) -> str:
        with self.session_factory() as session:
            items = ScheduleRepository(session).list_by_requester(requester_id)
        if not items:
            return NO_SCHEDULES
        lines = ["Your scheduled reports:"]
        lines.extend(f"{s.id}: {s.subject} at {s.hhmm}" for s in items)
        return "\n".join(lines)

    def _unschedule(self, requester_id: int, args: tuple[str, ...]) -> str:
        if not args or not args[0].isdigit():
            return UNSCHEDULE_USAGE
        schedule_id = int(args[0])
        with self.session_factory() as session:
            removed = ScheduleRepository(session).delete(schedule_id, requester_id=requester_id)
        if not removed:
            return f"Schedule {schedule_id} not found."
        return f"Schedule {schedule_id} removed."
