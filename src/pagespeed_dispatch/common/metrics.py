"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics (API Gateway)
- Счётчики задач очереди по итогу (ack/requeue/drop)
- Метрики тиков планировщика
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "pagespeed_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "pagespeed_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# Задержки стадий обработки (analysis/report/delivery)
PIPELINE_STAGE_LATENCY_MS = Histogram(
    "pagespeed_pipeline_stage_latency_ms",
    "Задержка выполнения стадий обработки (мс)",
    ["service", "stage"],
    buckets=(100, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000, 300000),
)

# Итог обработки задач очереди
QUEUE_TASKS_TOTAL = Counter(
    "pagespeed_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["service", "queue", "result"],  # result=ack|requeue|drop|dead_letter
)

QUEUE_ENQUEUED_TOTAL = Counter(
    "pagespeed_queue_enqueued_total",
    "Количество поставленных в очередь задач",
    ["queue", "source"],  # source=command|api|schedule
)

QUEUE_DEPTH = Gauge(
    "pagespeed_queue_depth",
    "Текущая глубина stream-очереди",
    ["queue"],
)

DLQ_DEPTH = Gauge(
    "pagespeed_dlq_depth",
    "Текущая глубина DLQ stream-очереди",
    ["queue"],
)

QUEUE_PENDING = Gauge(
    "pagespeed_queue_pending",
    "Текущее количество pending сообщений в consumer group",
    ["queue", "group"],
)

SCHEDULE_TICKS_TOTAL = Counter(
    "pagespeed_schedule_ticks_total",
    "Количество тиков планировщика",
    ["result"],  # ok|skipped
)

SCHEDULE_DISPATCHES_TOTAL = Counter(
    "pagespeed_schedule_dispatches_total",
    "Постановки задач из расписаний",
    ["result"],  # enqueued|failed
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "pagespeed_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        PIPELINE_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def refresh_queue_metrics() -> None:
    try:
        from pagespeed_dispatch.queue.streams import queue_stats

        for stat in queue_stats():
            QUEUE_DEPTH.labels(queue=stat.queue).set(stat.depth)
            DLQ_DEPTH.labels(queue=stat.queue).set(stat.dlq_depth)
            QUEUE_PENDING.labels(queue=stat.queue, group=stat.group).set(stat.pending)
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service="api-gateway",
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service="api-gateway",
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        refresh_queue_metrics()
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
