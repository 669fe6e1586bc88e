"""Domain models for sales and pricing analytics."""
from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any, Literal

Confidence = Literal["high", "medium", "low"]


@dataclass
class Product:
    id: str
    name: str
    selling_price: float
    unit_cost: float = 0.0
    stock_quantity: int = 0
    category: str | None = None


@dataclass
class SalesRecord:
    date: dt.datetime
    product_id: str
    quantity: int
    unit_price: float
    total_amount: float


@dataclass
class PricePoint:
    product_id: str
    price: float
    effective_date: dt.datetime


@dataclass
class ReturnRecord:
    product_id: str
    date: dt.datetime
    quantity: int = 1


@dataclass
class PriceChangeEvent:
    product_id: str
    price: float
    previous_price: float
    effective_date: dt.datetime
    sales_before: float  # avg daily units, 30 days before the change
    sales_after: float  # avg daily units, 30 days after the change


@dataclass
class Percentiles:
    p25: float = 0
    p75: float = 0
    p90: float = 0
    p95: float = 0
    p99: float = 0


@dataclass
class MetricsResult:
    count: int = 0
    sum: float = 0
    avg: float = 0
    min: float = 0
    max: float = 0
    median: float = 0
    percentiles: Percentiles = field(default_factory=Percentiles)


@dataclass
class ElasticityEstimate:
    elasticity: float
    confidence: Confidence
    sample_size: int


@dataclass
class PriceOptimization:
    optimized_price: float
    expected_sales_change: float  # percent
    expected_revenue_change: float  # percent


@dataclass
class PricingFactors:
    product_id: str
    cost_factor: float = 1.0
    competitive_factor: float = 1.0
    seasonality_factor: float = 1.0
    inventory_factor: float = 1.0


@dataclass
class PriceElasticityResult:
    product_id: str
    product_name: str
    current_price: float
    suggested_price: float
    price_elasticity: float
    expected_sales_change: float
    expected_revenue_change: float
    confidence: Confidence
    history_data_points: int


@dataclass
class PriceSuggestion:
    product_id: str
    name: str
    current_price: float
    suggested_price: float
    potential: int  # revenue potential change, percent
    recommendation: str
    confidence: Confidence


@dataclass
class OptimalProductMetrics:
    sales_volume: float
    profit_margin: float
    return_rate: float
    restock_rate: float
    growth_rate: float


@dataclass
class OptimalProduct:
    id: str
    name: str
    score: int
    reason: str
    category: str | None
    metrics: OptimalProductMetrics


@dataclass
class ProjectedEarning:
    month: str
    actual: float | None
    projected: float | None


@dataclass
class PeakSellingHour:
    hour: str
    sales: int


@dataclass
class TopProduct:
    id: str
    name: str
    quantity_sold: float
    order_count: int


@dataclass
class InventoryLevel:
    id: str
    name: str
    quantity: int
    low_stock: bool


@dataclass
class SalesPeriod:
    period: str
    total_sales: float
    order_count: int


@dataclass
class RevenuePoint:
    period: str
    value: float
    count: int = 0


@dataclass
class RevenueGrowth:
    overall: float  # first to last period, percent
    periodic: list[float] = field(default_factory=list)
    average_periodic: float = 0.0


@dataclass
class Seasonality:
    detected: bool = False
    pattern: str | None = None  # "weekly" or "monthly"
    strongest: str | None = None
    weakest: str | None = None
    indexes: dict[str, float] = field(default_factory=dict)


@dataclass
class RevenueTrendAnalysis:
    data: list[RevenuePoint]
    total: float
    average: float
    median: float
    min: RevenuePoint
    max: RevenuePoint
    growth: RevenueGrowth
    resolution: str
    start: dt.datetime
    end: dt.datetime
    trend: str  # increasing, decreasing, stable or volatile
    seasonality: Seasonality


@dataclass
class DaySales:
    day: str
    sales: int
    percent_of_average: int


@dataclass
class DayOfWeekTrend:
    product_id: str
    product_name: str
    best_day: str
    day_index: int  # 0 = Monday
    average_sales: float
    sales_by_day: list[DaySales]


def _camel(key: str) -> str:
    head, *tail = key.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel(str(k)): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    return value


def to_dict(record: Any) -> Any:
    """Convert a result record (or a list of them) into camelCase JSON data."""
    if isinstance(record, (list, tuple)):
        return [to_dict(item) for item in record]
    if is_dataclass(record) and not isinstance(record, type):
        return _jsonable(asdict(record))
    return _jsonable(record)
