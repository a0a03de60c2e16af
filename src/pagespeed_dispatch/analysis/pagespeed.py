"""
Провайдер через Google PageSpeed Insights API (v5).

Используется там, где нельзя держать локальный Chrome.
Ответ API содержит тот же Lighthouse Result Object.
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.errors import AnalysisInvalid, AnalysisTimeout, AnalysisUnreachable
from pagespeed_dispatch.common.logging import get_project_logger

from .base import AnalysisReport, classify_lighthouse_error, extract_report, validate_subject

log = get_project_logger()


@dataclass
class PageSpeedConfig:
    """Настройки PageSpeed Insights API."""

    api_base: str
    api_key: str | None
    strategy: str = "desktop"
    timeout_s: int = 120


class PageSpeedProvider:
    name = "pagespeed"

    def __init__(self) -> None:
        s = get_settings()
        self.cfg = PageSpeedConfig(
            api_base=s.pagespeed_api_base,
            api_key=s.google_page_speed_api_key,
            strategy=(s.pagespeed_strategy or "desktop").lower(),
            timeout_s=int(s.analysis_timeout_sec or 120),
        )

    def analyze(self, subject: str) -> AnalysisReport:
        url = validate_subject(subject)
        params = {"url": url, "category": "performance", "strategy": self.cfg.strategy}
        if self.cfg.api_key:
            params["key"] = self.cfg.api_key

        try:
            resp = requests.get(self.cfg.api_base, params=params, timeout=self.cfg.timeout_s)
        except requests.Timeout as e:
            raise AnalysisTimeout(details={"url": url, "timeout_sec": self.cfg.timeout_s}) from e
        except requests.RequestException as e:
            log.error(
                "pagespeed_http_error",
                extra={"payload": {"url": url, "err": str(e)[:200]}},
            )
            raise AnalysisUnreachable(
                "Ошибка HTTP при вызове PageSpeed API", details={"err": str(e)[:200]}
            ) from e

        if resp.status_code == 400:
            message = _error_message(resp)
            err = classify_lighthouse_error(
                message, details={"url": url, "status": resp.status_code}
            )
            # 400 без узнаваемого кода: проблема в самом запросе
            if isinstance(err, AnalysisUnreachable) and err.details.get("code") is None:
                raise AnalysisInvalid(
                    "PageSpeed API отклонил URL",
                    details={"url": url, "status": resp.status_code, "text_head": message[:300]},
                )
            raise err

        if resp.status_code >= 400:
            raise AnalysisUnreachable(
                "PageSpeed API вернул ошибку",
                details={"url": url, "status": resp.status_code, "text_head": resp.text[:300]},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise AnalysisUnreachable(
                "PageSpeed API вернул невалидный JSON",
                details={"url": url, "text_head": resp.text[:300]},
            ) from e

        report = extract_report(data.get("lighthouseResult"), provider=self.name)
        if not report.url:
            report.url = url
        return report


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or ""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or "")
    return resp.text or ""
