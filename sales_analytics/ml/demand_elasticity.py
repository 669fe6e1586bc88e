from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, List, Sequence

import numpy as np

from ..domain_models import ElasticityEstimate, PriceChangeEvent, PricePoint, SalesRecord
from ..reports import sales_frame

logger = logging.getLogger(__name__)

DEFAULT_ELASTICITY = -1.2
MIN_PRICE_CHANGES = 5
HIGH_CONFIDENCE_SAMPLES = 10
MEDIUM_CONFIDENCE_SAMPLES = 5


def average_daily_sales(
    sales: Iterable[SalesRecord],
    start: dt.datetime,
    end: dt.datetime,
) -> float:
    """
    Mean of the daily unit totals in ``[start, end]``.

    Only days with at least one sale count towards the mean. Returns 0 when
    nothing sold in the window.
    """
    window = [rec for rec in sales if start <= rec.date <= end]
    if not window:
        return 0.0

    frame = sales_frame(window)
    daily = frame.groupby(frame["date"].dt.normalize())["quantity"].sum()
    return float(daily.mean())


def build_price_change_events(
    price_history: Sequence[PricePoint],
    sales: Iterable[SalesRecord],
    window_days: int = 30,
) -> List[PriceChangeEvent]:
    """
    Pair each price point with its predecessor and attach average daily
    sales for ``window_days`` before and after the change.
    """
    history = sorted(price_history, key=lambda p: p.effective_date)
    if len(history) < 2:
        return []

    product_id = history[0].product_id
    product_sales = [rec for rec in sales if rec.product_id == product_id]
    window = dt.timedelta(days=window_days)

    events: List[PriceChangeEvent] = []
    for previous, current in zip(history, history[1:]):
        changed_at = current.effective_date
        events.append(
            PriceChangeEvent(
                product_id=product_id,
                price=current.price,
                previous_price=previous.price,
                effective_date=changed_at,
                sales_before=average_daily_sales(product_sales, changed_at - window, changed_at),
                sales_after=average_daily_sales(product_sales, changed_at, changed_at + window),
            )
        )
    return events


def _confidence_for(sample_size: int) -> str:
    if sample_size >= HIGH_CONFIDENCE_SAMPLES:
        return "high"
    if sample_size >= MEDIUM_CONFIDENCE_SAMPLES:
        return "medium"
    return "low"


def estimate_elasticity(
    events: Sequence[PriceChangeEvent],
    lookback_days: int | None = None,
    as_of: dt.datetime | None = None,
) -> ElasticityEstimate:
    """
    Estimate price elasticity of demand as the median of per-change ratios
    ``%change in quantity / %change in price``.

    With fewer than five price changes, or no usable change, the default
    elasticity of -1.2 is returned with low confidence and a sample size of 0.
    A non-negative estimate is returned unchanged; callers must not move the
    price on it.
    """
    if lookback_days is not None:
        cutoff = (as_of or dt.datetime.now()) - dt.timedelta(days=lookback_days)
        events = [event for event in events if event.effective_date >= cutoff]

    fallback = ElasticityEstimate(elasticity=DEFAULT_ELASTICITY, confidence="low", sample_size=0)
    if len(events) < MIN_PRICE_CHANGES:
        return fallback

    ratios: List[float] = []
    for event in events:
        if event.previous_price <= 0 or event.price == event.previous_price:
            continue
        if event.sales_before == 0:
            continue
        price_change = (event.price - event.previous_price) / event.previous_price
        quantity_change = (event.sales_after - event.sales_before) / event.sales_before
        ratios.append(quantity_change / price_change)

    if not ratios:
        logger.debug("No usable price changes among %d events; using default elasticity", len(events))
        return fallback

    return ElasticityEstimate(
        elasticity=float(np.median(ratios)),
        confidence=_confidence_for(len(ratios)),  # type: ignore[arg-type]
        sample_size=len(ratios),
    )


__all__ = [
    "DEFAULT_ELASTICITY",
    "average_daily_sales",
    "build_price_change_events",
    "estimate_elasticity",
]
