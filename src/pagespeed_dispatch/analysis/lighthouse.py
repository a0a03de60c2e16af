"""
Lighthouse CLI поверх эксклюзивного headless Chrome.

Важно:
- Chrome захватывается на время одного анализа и убивается после
- stdout Lighthouse не логируем целиком (может быть несколько МБ)
"""

from __future__ import annotations

import json
import subprocess

from pagespeed_dispatch.common.config import get_settings
from pagespeed_dispatch.common.errors import AnalysisTimeout, AnalysisUnreachable
from pagespeed_dispatch.common.logging import get_project_logger

from .base import AnalysisReport, classify_lighthouse_error, extract_report, validate_subject
from .browser import BrowserSlot, browser_slot

log = get_project_logger()


class LighthouseProvider:
    name = "lighthouse"

    def __init__(
        self,
        *,
        slot: BrowserSlot | None = None,
        lighthouse_bin: str | None = None,
        timeout_sec: int | None = None,
    ) -> None:
        s = get_settings()
        self.slot = slot or browser_slot()
        self.lighthouse_bin = lighthouse_bin or s.lighthouse_bin
        self.timeout_sec = int(timeout_sec or s.analysis_timeout_sec)

    def _command(self, url: str, port: int) -> list[str]:
        return [
            self.lighthouse_bin,
            url,
            f"--port={port}",
            "--output=json",
            "--output-path=stdout",
            "--only-categories=performance",
            "--quiet",
        ]

    def analyze(self, subject: str) -> AnalysisReport:
        url = validate_subject(subject)

        with self.slot.acquire() as chrome:
            cmd = self._command(url, chrome.port)
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_sec,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                raise AnalysisTimeout(
                    details={"url": url, "timeout_sec": self.timeout_sec}
                ) from e
            except OSError as e:
                raise AnalysisUnreachable(
                    "Не удалось запустить Lighthouse",
                    details={"bin": self.lighthouse_bin, "err": str(e)[:200]},
                ) from e

        if proc.returncode != 0:
            log.warning(
                "lighthouse_failed",
                extra={
                    "payload": {
                        "url": url,
                        "returncode": proc.returncode,
                        "stderr_head": (proc.stderr or "")[:500],
                    }
                },
            )
            raise classify_lighthouse_error(
                f"{proc.stderr or ''}\n{proc.stdout or ''}",
                details={"url": url, "returncode": proc.returncode},
            )

        try:
            lhr = json.loads(proc.stdout or "")
        except json.JSONDecodeError as e:
            raise AnalysisUnreachable(
                "Lighthouse вернул невалидный JSON",
                details={"url": url, "text_head": (proc.stdout or "")[:300]},
            ) from e

        report = extract_report(lhr, provider=self.name)
        if not report.url:
            report.url = url
        return report
