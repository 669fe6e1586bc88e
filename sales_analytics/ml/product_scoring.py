from __future__ import annotations

import datetime as dt
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List

from ..domain_models import OptimalProduct, OptimalProductMetrics, Product, ReturnRecord, SalesRecord
from ..reports import round_half_up

# Fixed business weights; they sum to 1.0.
MARGIN_WEIGHT = 0.25
VOLUME_WEIGHT = 0.20
RETURNS_WEIGHT = 0.15
TURNOVER_WEIGHT = 0.20
RECENCY_WEIGHT = 0.20


@dataclass
class _ProductActivity:
    product: Product
    sales_volume: int = 0
    revenue: float = 0.0
    profit: float = 0.0
    last_sale: dt.datetime | None = None


def _reason_for(score: int) -> str:
    if score > 75:
        return "High performer across all metrics"
    if score > 50:
        return "Good balanced performance"
    return "Average performer"


def score_products(
    products: Iterable[Product],
    sales: Iterable[SalesRecord],
    returns: Iterable[ReturnRecord] = (),
    days: int = 90,
    limit: int = 10,
    as_of: dt.datetime | None = None,
) -> List[OptimalProduct]:
    """
    Rank products by a weighted 0-100 score of margin, relative sales
    volume, return rate, inventory turnover and sales recency over the last
    ``days`` days. Products without sales in the window are left out.
    """
    now = as_of or dt.datetime.now()
    start = now - dt.timedelta(days=days)

    activity: Dict[str, _ProductActivity] = {p.id: _ProductActivity(product=p) for p in products}

    for rec in sales:
        entry = activity.get(rec.product_id)
        if entry is None or not start <= rec.date <= now:
            continue
        entry.sales_volume += rec.quantity
        entry.revenue += rec.unit_price * rec.quantity
        entry.profit += (rec.unit_price - (entry.product.unit_cost or 0)) * rec.quantity
        if entry.last_sale is None or rec.date > entry.last_sale:
            entry.last_sale = rec.date

    return_counts: Counter[str] = Counter()
    for ret in returns:
        if start <= ret.date <= now:
            return_counts[ret.product_id] += ret.quantity

    # First pass: raw sub-scores; volume stays raw until the batch maximum is known.
    scored: List[tuple[_ProductActivity, dict[str, float]]] = []
    for entry in activity.values():
        if entry.sales_volume <= 0:
            continue

        margin = entry.profit / entry.revenue * 100 if entry.revenue > 0 else 0.0
        return_rate = return_counts[entry.product.id] / entry.sales_volume * 100
        stock = entry.product.stock_quantity or 0
        turnover_rate = entry.sales_volume / stock if stock > 0 else 0.0

        recency = 0.0
        if entry.last_sale is not None:
            days_since_last_sale = (now - entry.last_sale).days
            recency = max(0.0, 100 - days_since_last_sale * 2)

        scored.append(
            (
                entry,
                {
                    "margin": min(100.0, margin * 2),
                    "volume": float(entry.sales_volume),
                    "returns": max(0.0, 100 - return_rate * 10),
                    "turnover": min(100.0, turnover_rate * 20),
                    "recency": recency,
                },
            )
        )

    max_volume = max([factors["volume"] for _, factors in scored] + [1.0])

    # Second pass: normalise volume against the batch and combine.
    results: List[OptimalProduct] = []
    for entry, factors in scored:
        factors["volume"] = factors["volume"] / max_volume * 100
        score = round_half_up(
            factors["margin"] * MARGIN_WEIGHT
            + factors["volume"] * VOLUME_WEIGHT
            + factors["returns"] * RETURNS_WEIGHT
            + factors["turnover"] * TURNOVER_WEIGHT
            + factors["recency"] * RECENCY_WEIGHT
        )
        results.append(
            OptimalProduct(
                id=entry.product.id,
                name=entry.product.name,
                score=score,
                reason=_reason_for(score),
                category=entry.product.category,
                metrics=OptimalProductMetrics(
                    sales_volume=factors["volume"],
                    profit_margin=factors["margin"],
                    return_rate=100 - factors["returns"],
                    restock_rate=factors["turnover"],
                    growth_rate=factors["recency"],
                ),
            )
        )

    results.sort(key=lambda p: p.score, reverse=True)
    return results[:limit]


__all__ = ["score_products"]
