"""Summary metrics and dashboard reports over sales and product snapshots."""
from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import asdict
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .domain_models import (
    DayOfWeekTrend,
    DaySales,
    InventoryLevel,
    MetricsResult,
    PeakSellingHour,
    Percentiles,
    Product,
    RevenueGrowth,
    RevenuePoint,
    RevenueTrendAnalysis,
    SalesPeriod,
    SalesRecord,
    Seasonality,
    TopProduct,
)

logger = logging.getLogger(__name__)

SALES_COLUMNS = ["date", "product_id", "quantity", "unit_price", "total_amount"]

TIMEFRAME_OFFSETS = {
    "day": pd.DateOffset(days=1),
    "week": pd.DateOffset(days=7),
    "month": pd.DateOffset(months=1),
    "year": pd.DateOffset(months=12),
}

INTERVAL_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%G-%V",  # ISO year and week
    "month": "%Y-%m",
}

HOUR_SLOT_LABELS = [
    "12-2 AM", "2-4 AM", "4-6 AM", "6-8 AM", "8-10 AM", "10-12 PM",
    "12-2 PM", "2-4 PM", "4-6 PM", "6-8 PM", "8-10 PM", "10-12 AM",
]

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# pandas period frequencies; weeks run Sunday to Saturday
RESOLUTION_FREQUENCIES = {
    "hourly": "h",
    "daily": "D",
    "weekly": "W-SAT",
    "monthly": "M",
    "quarterly": "Q",
    "yearly": "Y",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (3.5 -> 4, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def sales_frame(records: Iterable[SalesRecord]) -> pd.DataFrame:
    """Build a DataFrame of sale lines with a datetime ``date`` column."""
    frame = pd.DataFrame([asdict(rec) for rec in records], columns=SALES_COLUMNS)
    frame["date"] = pd.to_datetime(frame["date"])
    return frame


def compute_metrics(values: Sequence[float]) -> MetricsResult:
    """
    Count, sum, mean, extremes, median and nearest-rank percentiles.

    The percentile for ``p`` is the sorted value at index ``floor(p * count)``
    clamped to the last element; there is no interpolation.
    """
    if not values:
        return MetricsResult()

    ordered = sorted(values)
    count = len(ordered)
    total = sum(ordered)

    mid = count // 2
    if count % 2 == 0:
        median = (ordered[mid - 1] + ordered[mid]) / 2
    else:
        median = ordered[mid]

    def percentile(p: float) -> float:
        return ordered[min(math.floor(p * count), count - 1)]

    return MetricsResult(
        count=count,
        sum=total,
        avg=total / count,
        min=ordered[0],
        max=ordered[-1],
        median=median,
        percentiles=Percentiles(
            p25=percentile(0.25),
            p75=percentile(0.75),
            p90=percentile(0.90),
            p95=percentile(0.95),
            p99=percentile(0.99),
        ),
    )


def revenue_metrics(
    sales: Iterable[SalesRecord],
    timeframe: str,
    as_of: dt.datetime | None = None,
) -> MetricsResult:
    """Metrics over sale totals for the last day, week, month or year."""
    if timeframe not in TIMEFRAME_OFFSETS:
        raise ValueError(f"Unknown timeframe: {timeframe}")

    now = as_of or dt.datetime.now()
    start = (pd.Timestamp(now) - TIMEFRAME_OFFSETS[timeframe]).to_pydatetime()
    return compute_metrics([rec.total_amount for rec in sales if start <= rec.date <= now])


def sales_time_series(
    sales: Iterable[SalesRecord],
    interval: str = "day",
    start: dt.datetime | None = None,
    end: dt.datetime | None = None,
    as_of: dt.datetime | None = None,
) -> list[SalesPeriod]:
    """Sales totals and line counts grouped by day, ISO week or month."""
    if interval not in INTERVAL_FORMATS:
        raise ValueError(f"Unknown interval: {interval}")

    end = end or as_of or dt.datetime.now()
    start = start or end - dt.timedelta(days=30)

    window = [rec for rec in sales if start <= rec.date <= end]
    if not window:
        return []

    frame = sales_frame(window)
    keys = frame["date"].dt.strftime(INTERVAL_FORMATS[interval])
    grouped = frame.groupby(keys)["total_amount"].agg(["sum", "count"])

    return [
        SalesPeriod(period=str(period), total_sales=float(row["sum"]), order_count=int(row["count"]))
        for period, row in grouped.iterrows()
    ]


def top_products(
    products: Iterable[Product],
    sales: Iterable[SalesRecord],
    limit: int = 10,
) -> list[TopProduct]:
    """Best sellers by units sold."""
    frame = sales_frame(sales)
    if frame.empty:
        return []

    names = {product.id: product.name for product in products}
    grouped = frame.groupby("product_id")["quantity"].agg(["sum", "count"])
    grouped = grouped.sort_values("sum", ascending=False, kind="mergesort").head(limit)

    return [
        TopProduct(
            id=str(product_id),
            name=names.get(product_id, "Unknown Product"),
            quantity_sold=float(row["sum"]),
            order_count=int(row["count"]),
        )
        for product_id, row in grouped.iterrows()
    ]


def inventory_levels(
    products: Iterable[Product], low_stock_threshold: int = 5
) -> list[InventoryLevel]:
    """Stock levels, lowest first, flagging anything at or below the threshold."""
    ordered = sorted(products, key=lambda p: p.stock_quantity or 0)
    return [
        InventoryLevel(
            id=product.id,
            name=product.name,
            quantity=product.stock_quantity or 0,
            low_stock=(product.stock_quantity or 0) <= low_stock_threshold,
        )
        for product in ordered
    ]


def peak_selling_hours(
    sales: Iterable[SalesRecord],
    days: int = 30,
    normalize: bool = False,
    as_of: dt.datetime | None = None,
) -> list[PeakSellingHour]:
    """Count sales per two-hour slot of the day; optionally as rounded percentages."""
    now = as_of or dt.datetime.now()
    start = now - dt.timedelta(days=days)
    window = [rec for rec in sales if start <= rec.date <= now]
    if not window:
        return []

    frame = sales_frame(window)
    slots = (frame["date"].dt.hour // 2).value_counts()
    counts = [int(slots.get(index, 0)) for index in range(len(HOUR_SLOT_LABELS))]

    if normalize:
        total = sum(counts)
        if total > 0:
            counts = [round_half_up(count / total * 100) for count in counts]

    return [PeakSellingHour(hour=label, sales=count) for label, count in zip(HOUR_SLOT_LABELS, counts)]


def determine_resolution(days: int) -> str:
    """Bucket size for a window of ``days`` days; 0 means all time."""
    if days == 0:
        return "yearly"
    if days <= 3:
        return "hourly"
    if days <= 14:
        return "daily"
    if days <= 90:
        return "weekly"
    if days <= 365:
        return "monthly"
    if days <= 730:
        return "quarterly"
    return "yearly"


def _period_label(period: pd.Period, resolution: str) -> str:
    if resolution == "hourly":
        return period.start_time.strftime("%Y-%m-%d %H:00")
    if resolution in ("daily", "weekly"):
        return period.start_time.strftime("%Y-%m-%d")
    if resolution == "monthly":
        return period.start_time.strftime("%Y-%m")
    if resolution == "quarterly":
        return f"{period.year}-Q{period.quarter}"
    return str(period.year)


def growth_rates(values: Sequence[float]) -> tuple[list[float], float]:
    """Period-to-period growth in percent and its mean. Growth from zero counts as 100."""
    rates: list[float] = []
    for previous, current in zip(values, values[1:]):
        if previous == 0:
            rates.append(100.0 if current > 0 else 0.0)
        else:
            rates.append((current - previous) / previous * 100)
    return rates, (sum(rates) / len(rates) if rates else 0.0)


def overall_growth(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    first, last = values[0], values[-1]
    if first == 0:
        return 100.0 if last > 0 else 0.0
    return (last - first) / first * 100


def determine_trend(rates: Sequence[float], seasonal: bool = False) -> str:
    """
    Classify growth rates. A standard deviation above 30 points is
    "volatile"; otherwise the share of positive periods decides, with looser
    cut-offs when a seasonal pattern was found.
    """
    if not rates:
        return "stable"
    if float(np.std(rates)) > 30:
        return "volatile"

    positive_share = sum(1 for rate in rates if rate > 0) / len(rates) * 100
    if positive_share >= (60 if seasonal else 70):
        return "increasing"
    if positive_share <= (40 if seasonal else 30):
        return "decreasing"
    return "stable"


def _seasonality(periods: Sequence[pd.Period], values: Sequence[float], resolution: str) -> Seasonality:
    # seasonal indexes compare the mean of each weekday (or month) against the mean of those means
    if len(values) < 7:
        return Seasonality()
    if resolution in ("hourly", "daily"):
        pattern = "weekly"
        keys = [DAY_NAMES[period.start_time.dayofweek] for period in periods]
    elif resolution == "monthly":
        pattern = "monthly"
        keys = [period.start_time.strftime("%B") for period in periods]
    else:
        return Seasonality()

    averages = pd.Series(list(values), index=keys).groupby(level=0, sort=False).mean()
    overall = averages.mean()
    if overall <= 0:
        return Seasonality()

    indexes = averages / overall * 100
    if not ((indexes > 120) | (indexes < 80)).any():
        return Seasonality()

    return Seasonality(
        detected=True,
        pattern=pattern,
        strongest=str(indexes.idxmax()),
        weakest=str(indexes.idxmin()),
        indexes={str(key): float(value) for key, value in indexes.items()},
    )


def analyze_revenue_trends(
    sales: Iterable[SalesRecord],
    days: int = 30,
    as_of: dt.datetime | None = None,
) -> RevenueTrendAnalysis | None:
    """
    Revenue per period over the last ``days`` days (0 for all time), with
    totals, extremes, growth rates, seasonality and an overall trend label.

    The bucket size follows the window length, see ``determine_resolution``.
    Periods without sales are kept as zero. Returns None when no sale falls
    in the window.
    """
    end = as_of or dt.datetime.now()
    sales = [rec for rec in sales if rec.date <= end]
    if days == 0:
        start = min((rec.date for rec in sales), default=end)
    else:
        start = end - dt.timedelta(days=days)

    window = [rec for rec in sales if rec.date >= start]
    if not window:
        logger.debug("No sales between %s and %s; no revenue trend", start, end)
        return None

    resolution = determine_resolution(days)
    freq = RESOLUTION_FREQUENCIES[resolution]
    frame = sales_frame(window)
    grouped = frame.groupby(frame["date"].dt.to_period(freq))["total_amount"].agg(["sum", "count"])
    periods = pd.period_range(pd.Period(start, freq=freq), pd.Period(end, freq=freq), freq=freq)
    grouped = grouped.reindex(periods, fill_value=0)

    points = [
        RevenuePoint(
            period=_period_label(period, resolution), value=float(row["sum"]), count=int(row["count"])
        )
        for period, row in grouped.iterrows()
    ]
    values = [point.value for point in points]
    periodic, average_periodic = growth_rates(values)
    seasonality = _seasonality(list(periods), values, resolution)

    return RevenueTrendAnalysis(
        data=points,
        total=sum(values),
        average=sum(values) / len(values),
        median=compute_metrics(values).median,
        min=min(points, key=lambda point: point.value),
        max=max(points, key=lambda point: point.value),
        growth=RevenueGrowth(
            overall=overall_growth(values), periodic=periodic, average_periodic=average_periodic
        ),
        resolution=resolution,
        start=start,
        end=end,
        trend=determine_trend(periodic, seasonal=seasonality.detected),
        seasonality=seasonality,
    )


def day_of_week_trends(
    products: Iterable[Product],
    sales: Iterable[SalesRecord],
    days: int = 90,
    min_units: int = 3,
    as_of: dt.datetime | None = None,
) -> list[DayOfWeekTrend]:
    """
    Units sold per weekday for each product with at least ``min_units`` units
    in the window, strongest weekday pattern first.
    """
    now = as_of or dt.datetime.now()
    start = now - dt.timedelta(days=days)
    window = [rec for rec in sales if start <= rec.date <= now]
    if not window:
        return []

    frame = sales_frame(window)
    frame["weekday"] = frame["date"].dt.dayofweek
    table = frame.pivot_table(
        index="product_id", columns="weekday", values="quantity", aggfunc="sum", fill_value=0
    ).reindex(columns=range(len(DAY_NAMES)), fill_value=0)
    names = {product.id: product.name for product in products}

    trends: list[DayOfWeekTrend] = []
    for product_id, row in table.iterrows():
        units = [int(row[index]) for index in range(len(DAY_NAMES))]
        total = sum(units)
        if total < min_units:
            continue

        average = total / len(DAY_NAMES)
        best = units.index(max(units))
        trends.append(
            DayOfWeekTrend(
                product_id=str(product_id),
                product_name=names.get(product_id, "Unknown Product"),
                best_day=DAY_NAMES[best],
                day_index=best,
                average_sales=average,
                sales_by_day=[
                    DaySales(day=day, sales=count, percent_of_average=round_half_up(count / average * 100))
                    for day, count in zip(DAY_NAMES, units)
                ],
            )
        )

    trends.sort(key=lambda trend: max(day.percent_of_average for day in trend.sales_by_day), reverse=True)
    return trends


__all__ = [
    "analyze_revenue_trends",
    "compute_metrics",
    "day_of_week_trends",
    "determine_resolution",
    "determine_trend",
    "growth_rates",
    "inventory_levels",
    "overall_growth",
    "peak_selling_hours",
    "revenue_metrics",
    "round_half_up",
    "sales_frame",
    "sales_time_series",
    "top_products",
]
