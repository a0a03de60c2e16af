"""
Worker Dispatch.

Алгоритм:
- читаем из Redis Stream q:lighthouse_tasks (consumer group), по одной записи
- анализ URL -> PDF -> отправка в Telegram
- ack только после успешной доставки; иначе requeue или DLQ

Масштабирование: несколько процессов воркера в одной consumer group.
"""

from __future__ import annotations

import time

from pagespeed_dispatch.analysis.providers import build_analysis_provider
from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.logging import get_project_logger, setup_logging
from pagespeed_dispatch.delivery.telegram.sender import TelegramDeliveryProvider
from pagespeed_dispatch.report.pdf import PdfReportRenderer
from pagespeed_dispatch.services.dispatch_worker import DispatchWorker

log = get_project_logger()


def build_worker() -> DispatchWorker:
    return DispatchWorker(
        analysis=build_analysis_provider(),
        delivery=TelegramDeliveryProvider(),
        renderer=PdfReportRenderer(),
    )


def run_loop() -> None:
    worker = build_worker()
    worker.run_loop()


def main() -> None:
    setup_logging("worker-dispatch")
    s = get_settings()
    if not s.telegram_bot_api_key:
        log.warning("telegram_bot_api_key_not_set", extra={"payload": {}})
    while True:
        try:
            run_loop()
        except Exception as e:
            log.error("worker_dispatch_fatal", extra={"payload": {"err": str(e)[:200]}})
            time.sleep(2)


if __name__ == "__main__":
    main()
