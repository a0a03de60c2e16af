"""
Базовый интерфейс анализа производительности страницы.

Назначение:
- единый контракт для всех провайдеров (lighthouse/pagespeed/mock)
- разбор Lighthouse Result Object (lhr) в AnalysisReport
- классификация ошибок Lighthouse: timeout / unreachable / invalid
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import urlparse

from pagespeed_dispatch.common.errors import (
    AnalysisError,
    AnalysisInvalid,
    AnalysisTimeout,
    AnalysisUnreachable,
)
from pagespeed_dispatch.common.time import utc_now


@dataclass
class AnalysisReport:
    url: str
    performance_score: float
    speed_index: str
    first_contentful_paint: str
    largest_contentful_paint: str
    time_to_interactive: str
    provider: str
    fetched_at: datetime = field(default_factory=utc_now)

    def as_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "performanceScore": self.performance_score,
            "speedIndex": self.speed_index,
            "firstContentfulPaint": self.first_contentful_paint,
            "largestContentfulPaint": self.largest_contentful_paint,
            "timeToInteractive": self.time_to_interactive,
        }


class AnalysisProvider(Protocol):
    name: str

    def analyze(self, subject: str) -> AnalysisReport: ...


def validate_subject(subject: str) -> str:
    """
    Проверка URL до запуска дорогого анализа. Некорректный адрес -> fatal.
    """
    value = (subject or "").strip()
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise AnalysisInvalid("Ожидается http(s) URL", details={"subject": value[:300]})
    return value


# =============================================================================
# КЛАССИФИКАЦИЯ ОШИБОК LIGHTHOUSE
# =============================================================================
_TIMEOUT_CODES: tuple[str, ...] = (
    "PROTOCOL_TIMEOUT",
    "PAGE_HUNG",
    "NO_FCP",
    "NO_LCP",
)
_UNREACHABLE_CODES: tuple[str, ...] = (
    "DNS_FAILURE",
    "FAILED_DOCUMENT_REQUEST",
    "ERRORED_DOCUMENT_REQUEST",
    "CHROME_INTERSTITIAL_ERROR",
    "TARGET_CRASHED",
    "ECONNREFUSED",
)
_INVALID_CODES: tuple[str, ...] = (
    "NOT_HTML",
    "INSECURE_DOCUMENT_REQUEST",
    "INVALID_URL",
    "NO_NAVSTART",
)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None


def classify_lighthouse_error(text: str, *, details: dict | None = None) -> AnalysisError:
    """
    По коду/тексту ошибки Lighthouse выбирает класс исключения.
    Неизвестное -> unreachable (повтор безопаснее потери задачи).
    """
    haystack = (text or "").upper()
    info = {**(details or {}), "text_head": (text or "")[:300]}

    code = _first_match(haystack, _INVALID_CODES)
    if code is not None:
        return AnalysisInvalid(
            "Страница не поддерживается анализом", details={**info, "code": code}
        )

    code = _first_match(haystack, _TIMEOUT_CODES)
    if code is not None:
        return AnalysisTimeout("Страница не загрузилась вовремя", details={**info, "code": code})

    code = _first_match(haystack, _UNREACHABLE_CODES)
    return AnalysisUnreachable("Страница недоступна", details={**info, "code": code})


def _display_value(audits: dict[str, Any], key: str) -> str:
    audit = audits.get(key) or {}
    value = audit.get("displayValue")
    return str(value) if value else "n/a"


def extract_report(lhr: dict[str, Any] | None, *, provider: str) -> AnalysisReport:
    """
    Ключевые метрики из Lighthouse Result Object.
    """
    if not isinstance(lhr, dict) or not isinstance(lhr.get("categories"), dict):
        raise AnalysisUnreachable("Lighthouse не вернул корректный результат")

    runtime_error = lhr.get("runtimeError")
    if isinstance(runtime_error, dict) and runtime_error.get("code") not in (None, "", "NO_ERROR"):
        raise classify_lighthouse_error(
            f"{runtime_error.get('code')} {runtime_error.get('message', '')}",
            details={"provider": provider},
        )

    performance = lhr["categories"].get("performance") or {}
    score = performance.get("score")
    audits = lhr.get("audits") or {}

    url = lhr.get("finalDisplayedUrl") or lhr.get("finalUrl") or lhr.get("requestedUrl") or ""
    return AnalysisReport(
        url=str(url),
        performance_score=round(float(score or 0) * 100, 1),
        speed_index=_display_value(audits, "speed-index"),
        first_contentful_paint=_display_value(audits, "first-contentful-paint"),
        largest_contentful_paint=_display_value(audits, "largest-contentful-paint"),
        time_to_interactive=_display_value(audits, "interactive"),
        provider=provider,
    )
