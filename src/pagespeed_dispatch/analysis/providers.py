"""
Выбор провайдера анализа по ANALYSIS_PROVIDER.
"""

from __future__ import annotations

from pagespeed_dispatch.common.config import get_settings

from .base import AnalysisProvider
from .mock import MockAnalysisProvider


def build_analysis_provider(name: str | None = None) -> AnalysisProvider:
    provider = (name or get_settings().analysis_provider or "lighthouse").strip().lower()

    if provider == "mock":
        return MockAnalysisProvider()

    if provider == "pagespeed":
        from .pagespeed import PageSpeedProvider

        return PageSpeedProvider()

    # default: lighthouse (локальный Chrome)
    from .lighthouse import LighthouseProvider

    return LighthouseProvider()
