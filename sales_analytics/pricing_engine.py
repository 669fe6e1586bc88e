"""Core pricing calculations."""
from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Iterable

from .domain_models import (
    PriceElasticityResult,
    PriceOptimization,
    PriceSuggestion,
    PricingFactors,
    Product,
)
from .ml.demand_elasticity import build_price_change_events, estimate_elasticity
from .reports import round_half_up
from .state import AnalyticsStore

logger = logging.getLogger(__name__)

CONFIDENCE_RANK = {"high": 3, "medium": 2, "low": 1}


def optimize_price(
    current_price: float,
    elasticity: float,
    min_price_change: float = -0.2,
    max_price_change: float = 0.2,
    cost_price: float = 0,
) -> PriceOptimization:
    """
    Move the price towards the profit (with a cost) or revenue (without one)
    maximising point for a constant-elasticity demand curve, bounded to
    ``[min_price_change, max_price_change]`` around the current price.

    Non-negative elasticity means the demand response is unknown, so the
    current price is returned with zero expected change.
    """
    if elasticity >= 0 or current_price <= 0:
        return PriceOptimization(
            optimized_price=current_price, expected_sales_change=0.0, expected_revenue_change=0.0
        )

    lower_bound = current_price * (1 + min_price_change)
    upper_bound = current_price * (1 + max_price_change)

    # At unit elasticity the optimum is unbounded; the clamp below picks the edge.
    if cost_price > 0:
        markup = 1 + (1 / elasticity)
        optimal_price = cost_price / markup if markup != 0 else math.inf
    else:
        denominator = 1 + elasticity
        optimal_price = current_price * (elasticity / denominator) if denominator != 0 else -math.inf

    optimized_price = max(lower_bound, min(upper_bound, optimal_price))

    price_change = (optimized_price / current_price) - 1
    expected_sales_change = price_change * elasticity * 100
    expected_revenue_change = (1 + price_change) * (1 + price_change * elasticity) * 100 - 100

    return PriceOptimization(
        optimized_price=optimized_price,
        expected_sales_change=expected_sales_change,
        expected_revenue_change=expected_revenue_change,
    )


def round_to_nice_price_point(price: float) -> float:
    """Round down to a .99 / X9.99 / X99 style price point."""
    if price <= 0:
        return 0.0
    if price < 10:
        nice = math.floor(price) + 0.99
    elif price < 100:
        nice = math.floor(price / 10) * 10 - 0.01
    else:
        nice = math.floor(price / 100) * 100 - 1
    return round(nice, 2)


def derive_pricing_factors(product: Product, as_of: dt.datetime | None = None) -> PricingFactors:
    """Secondary multipliers from stock level, competition and season."""
    stock = product.stock_quantity or 0
    if stock > 100:
        inventory_factor = 0.95
    elif 0 < stock < 10:
        inventory_factor = 1.02
    else:
        inventory_factor = 1.0

    month = (as_of or dt.datetime.now()).month
    seasonality_factor = 1.05 if month in (11, 12) else 1.0

    return PricingFactors(
        product_id=product.id,
        cost_factor=1.0,
        competitive_factor=0.98,
        seasonality_factor=seasonality_factor,
        inventory_factor=inventory_factor,
    )


def apply_pricing_factors(base_price: float, factors: PricingFactors) -> float:
    adjusted = (
        base_price
        * factors.cost_factor
        * factors.competitive_factor
        * factors.seasonality_factor
        * factors.inventory_factor
    )
    return round_to_nice_price_point(adjusted)


def compute_pricing_suggestions(
    store: AnalyticsStore,
    product_ids: Iterable[str] | None = None,
    confidence_threshold: str = "medium",
    lookback_days: int = 90,
    as_of: dt.datetime | None = None,
    min_price_change: float = -0.2,
    max_price_change: float = 0.2,
    revenue_improvement_threshold: float = 1.0,
) -> list[PriceElasticityResult]:
    """
    Elasticity-driven price suggestions, best expected revenue gain first.

    Products whose elasticity confidence ranks below ``confidence_threshold``
    are skipped, and only suggestions expected to lift revenue by more than
    ``revenue_improvement_threshold`` percent are returned.
    """
    if confidence_threshold not in CONFIDENCE_RANK:
        raise ValueError(f"Unknown confidence level: {confidence_threshold}")

    end = as_of or dt.datetime.now()
    start = end - dt.timedelta(days=lookback_days)
    ids = list(product_ids) if product_ids is not None else [p.id for p in store.get_products()]

    results: list[PriceElasticityResult] = []
    for product_id in ids:
        product = store.get_product(product_id)
        if product is None or not product.selling_price:
            continue

        history = store.get_price_history(product_id, start=start, end=end)
        events = build_price_change_events(history, store.get_sales(product_id=product_id, end=end))
        estimate = estimate_elasticity(events)

        if CONFIDENCE_RANK[estimate.confidence] < CONFIDENCE_RANK[confidence_threshold]:
            logger.debug(
                "Skipping %s: %s confidence below %s", product_id, estimate.confidence, confidence_threshold
            )
            continue

        current_price = product.selling_price
        cost = product.unit_cost or current_price * 0.5

        optimization = optimize_price(
            current_price,
            estimate.elasticity,
            min_price_change=min_price_change,
            max_price_change=max_price_change,
            cost_price=cost,
        )
        suggested_price = apply_pricing_factors(
            optimization.optimized_price, derive_pricing_factors(product, as_of=end)
        )

        if optimization.expected_revenue_change > revenue_improvement_threshold:
            results.append(
                PriceElasticityResult(
                    product_id=product.id,
                    product_name=product.name,
                    current_price=current_price,
                    suggested_price=suggested_price,
                    price_elasticity=estimate.elasticity,
                    expected_sales_change=optimization.expected_sales_change,
                    expected_revenue_change=optimization.expected_revenue_change,
                    confidence=estimate.confidence,
                    history_data_points=len(events),
                )
            )

    return sorted(results, key=lambda r: r.expected_revenue_change, reverse=True)


def compute_price_suggestions(
    store: AnalyticsStore,
    limit: int = 10,
    confidence_threshold: str = "medium",
    as_of: dt.datetime | None = None,
    lookback_days: int = 90,
    min_price_change: float = -0.2,
    max_price_change: float = 0.2,
    revenue_improvement_threshold: float = 1.0,
) -> list[PriceSuggestion]:
    """
    Price suggestions for every product: elasticity-based where the data
    supports it, otherwise a stock-versus-volume heuristic. Changes under 5%
    are dropped.
    """
    elasticity_results = {
        result.product_id: result
        for result in compute_pricing_suggestions(
            store,
            confidence_threshold=confidence_threshold,
            lookback_days=lookback_days,
            as_of=as_of,
            min_price_change=min_price_change,
            max_price_change=max_price_change,
            revenue_improvement_threshold=revenue_improvement_threshold,
        )
    }
    volumes = store.sale_item_aggregates(end=as_of)

    suggestions: list[PriceSuggestion] = []
    for product in store.get_products():
        current_price = product.selling_price or 0
        suggested_price = current_price
        potential = 0.0

        elasticity_data = elasticity_results.get(product.id)
        if elasticity_data is not None:
            suggested_price = elasticity_data.suggested_price
            potential = elasticity_data.expected_revenue_change
        else:
            sales_volume = volumes.get(product.id, (0, 0))[0]
            stock = product.stock_quantity or 0
            if sales_volume > 0 and stock < sales_volume * 0.5:
                suggested_price = current_price * 1.1
                potential = 10
            elif stock > sales_volume * 2:
                suggested_price = max((product.unit_cost or 0) * 1.2, current_price * 0.9)
                potential = -10

        rounded_potential = round_half_up(potential)
        suggestions.append(
            PriceSuggestion(
                product_id=product.id,
                name=product.name,
                current_price=current_price,
                suggested_price=round(suggested_price, 2),
                potential=rounded_potential,
                recommendation="Increase price" if rounded_potential > 0 else "Decrease price",
                confidence=elasticity_data.confidence if elasticity_data else "low",
            )
        )

    significant = [s for s in suggestions if abs(s.potential) >= 5]
    significant.sort(key=lambda s: abs(s.potential), reverse=True)
    return significant[:limit]


__all__ = [
    "apply_pricing_factors",
    "compute_price_suggestions",
    "compute_pricing_suggestions",
    "derive_pricing_factors",
    "optimize_price",
    "round_to_nice_price_point",
]
