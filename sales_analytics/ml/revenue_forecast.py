from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from ..domain_models import ProjectedEarning, SalesRecord
from ..reports import round_half_up, sales_frame

logger = logging.getLogger(__name__)


def fit_linear_trend(values: Sequence[float]) -> Tuple[float, float]:
    """
    Fit ``value = intercept + slope * x`` by ordinary least squares, where x
    is the position 0..n-1.

    Returns (slope, intercept). A single point gives a flat line through it.
    """
    if len(values) == 0:
        raise ValueError("Need at least one value to fit a trend.")

    y = np.asarray(values, dtype=float)
    n = len(y)
    if n == 1:
        return 0.0, float(y[0])

    x = np.arange(n, dtype=float)
    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_xx = (x * x).sum()

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n
    return float(slope), float(intercept)


def forecast_monthly(
    monthly_actuals: Sequence[float],
    future_months: int,
    labels: Sequence[str] | None = None,
    future_labels: Sequence[str] | None = None,
) -> List[ProjectedEarning]:
    """
    Extend monthly totals ``future_months`` ahead along their OLS trend.

    Historical points carry only ``actual``, future points only
    ``projected``. Projections are rounded and never negative. No history
    means no forecast.
    """
    n = len(monthly_actuals)
    if n == 0:
        return []

    labels = list(labels) if labels is not None else [f"M{i + 1}" for i in range(n)]
    if future_labels is None:
        future_labels = [f"M{n + i}" for i in range(1, future_months + 1)]
    if len(labels) != n:
        raise ValueError(f"Expected {n} labels for the history, got {len(labels)}.")
    if len(future_labels) < future_months:
        raise ValueError(f"Expected {future_months} future labels, got {len(future_labels)}.")

    slope, intercept = fit_linear_trend(monthly_actuals)

    series = [
        ProjectedEarning(month=label, actual=float(value), projected=None)
        for label, value in zip(labels, monthly_actuals)
    ]
    for i in range(1, future_months + 1):
        projected_value = intercept + slope * (n + i - 1)
        series.append(
            ProjectedEarning(
                month=future_labels[i - 1],
                actual=None,
                projected=max(0, round_half_up(projected_value)),
            )
        )
    return series


def monthly_revenue_totals(
    sales: Iterable[SalesRecord],
    past_months: int = 6,
    as_of: dt.datetime | None = None,
) -> pd.Series:
    """
    Sale totals per calendar month from the month ``past_months`` before
    ``as_of`` through ``as_of``'s month, with empty months as 0.
    """
    current = pd.Period(as_of or dt.datetime.now(), freq="M")
    months = pd.period_range(current - past_months, current, freq="M")

    start = months[0].start_time.to_pydatetime()
    end = (months[-1] + 1).start_time.to_pydatetime()
    frame = sales_frame(rec for rec in sales if start <= rec.date < end)

    if frame.empty:
        return pd.Series(0.0, index=months)

    totals = frame.groupby(frame["date"].dt.to_period("M"))["total_amount"].sum()
    return totals.reindex(months, fill_value=0.0).astype(float)


def project_earnings(
    sales: Iterable[SalesRecord],
    past_months: int = 6,
    future_months: int = 6,
    as_of: dt.datetime | None = None,
) -> List[ProjectedEarning]:
    """Monthly actuals for the trailing window followed by projected months."""
    totals = monthly_revenue_totals(sales, past_months=past_months, as_of=as_of)
    if not totals.any():
        logger.debug("No sales in the last %d months; nothing to project", past_months)
        return []

    last_month = totals.index[-1]
    return forecast_monthly(
        totals.tolist(),
        future_months,
        labels=[period.strftime("%b") for period in totals.index],
        future_labels=[(last_month + i).strftime("%b") for i in range(1, future_months + 1)],
    )


__all__ = [
    "fit_linear_trend",
    "forecast_monthly",
    "monthly_revenue_totals",
    "project_earnings",
]
