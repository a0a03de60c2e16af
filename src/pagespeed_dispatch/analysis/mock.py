"""
Mock анализа для тестов и dev.

Назначение:
- гонять пайплайн без Chrome и внешних API
- предсказуемый результат
"""

from __future__ import annotations

from .base import AnalysisReport, validate_subject


class MockAnalysisProvider:
    name = "mock"

    def analyze(self, subject: str) -> AnalysisReport:
        url = validate_subject(subject)
        return AnalysisReport(
            url=url,
            performance_score=97.0,
            speed_index="0.8 s",
            first_contentful_paint="0.6 s",
            largest_contentful_paint="1.1 s",
            time_to_interactive="1.2 s",
            provider=self.name,
        )
