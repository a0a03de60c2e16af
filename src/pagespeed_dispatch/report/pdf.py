"""
PDF-отчёт по результату анализа.

Назначение:
- текст отчёта из Jinja2 шаблона (templates/report.txt.j2)
- вёрстка в PDF через reportlab, в память (без временных файлов)
- подпись к документу и текст уведомления о сбое из тех же шаблонов
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from pagespeed_dispatch.analysis.base import AnalysisReport
from pagespeed_dispatch.common.errors import ReportError

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
_MARGIN = 50
_LINE_HEIGHT = 16
_MAX_LINE_CHARS = 110


def _jinja() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        keep_trailing_newline=False,
    )


_ENV = _jinja()


def render_text(report: AnalysisReport) -> str:
    return _ENV.get_template("report.txt.j2").render(report=report)


def render_caption(report: AnalysisReport) -> str:
    return _ENV.get_template("caption.txt.j2").render(report=report).strip()


def render_failure_notice(*, subject: str, reason: str | None = None) -> str:
    return _ENV.get_template("failure.txt.j2").render(subject=subject, reason=reason).strip()


def _wrap(line: str) -> list[str]:
    if len(line) <= _MAX_LINE_CHARS:
        return [line]
    return [line[i : i + _MAX_LINE_CHARS] for i in range(0, len(line), _MAX_LINE_CHARS)]


def _draw_pdf(title: str, lines: list[str]) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(title)
    _, height = A4
    y = height - _MARGIN
    first = True
    for line in lines:
        for chunk in _wrap(line):
            if y < _MARGIN:
                c.showPage()
                y = height - _MARGIN
            if first:
                c.setFont("Helvetica-Bold", 16)
                first = False
            else:
                c.setFont("Helvetica", 12)
            c.drawString(_MARGIN, y, chunk)
            y -= _LINE_HEIGHT
    c.save()
    return buf.getvalue()


def render(report: AnalysisReport) -> bytes:
    """
    AnalysisReport -> байты PDF. Любой сбой вёрстки -> ReportError (fatal).
    """
    try:
        text = render_text(report)
        return _draw_pdf(f"Page Speed Report: {report.url}", text.splitlines())
    except TemplateError as e:
        raise ReportError(
            "Ошибка шаблона отчёта", details={"url": report.url, "err": str(e)[:200]}
        ) from e
    except Exception as e:
        raise ReportError(details={"url": report.url, "err": str(e)[:200]}) from e


class PdfReportRenderer:
    """Коллаборатор отчёта для воркера."""

    content_type = "application/pdf"

    def render(self, report: AnalysisReport) -> bytes:
        return render(report)

    def caption(self, report: AnalysisReport) -> str:
        return render_caption(report)
