"""
Analytics settings.
Defaults live on the dataclass; a project can override any of them through the
``SALES_ANALYTICS`` Django setting, e.g.::

    SALES_ANALYTICS = {"lookback_days": 60, "NOTIFICATIONS": {"info": False}}
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields

from django.conf import settings


@dataclass
class AnalyticsSettings:
    lookback_days: int = 90
    min_price_change: float = -0.2
    max_price_change: float = 0.2
    revenue_improvement_threshold: float = 1.0  # percent
    confidence_threshold: str = "medium"
    low_stock_threshold: int = 5
    past_months: int = 6
    future_months: int = 6
    scoring_days: int = 90
    suggestion_limit: int = 10
    notifications: dict[str, bool] = field(
        default_factory=lambda: {"success": True, "info": True, "warning": True, "error": True}
    )


def get_analytics_settings() -> AnalyticsSettings:
    """Return defaults overlaid with the project's ``SALES_ANALYTICS`` dict."""
    overrides = dict(getattr(settings, "SALES_ANALYTICS", {}) or {})
    known = {f.name for f in fields(AnalyticsSettings)}

    values: dict[str, object] = {}
    for key, value in overrides.items():
        name = key.lower()
        if name not in known:
            raise ValueError(f"Unknown SALES_ANALYTICS setting: {key}")
        values[name] = value

    config = AnalyticsSettings(**values)  # type: ignore[arg-type]
    if "notifications" in values:
        merged = AnalyticsSettings().notifications
        merged.update(values["notifications"])  # type: ignore[arg-type]
        config.notifications = merged
    return config
