"""Process-wide in-memory store for products, sales, price history and returns."""
from __future__ import annotations

import datetime as dt
import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List

from .domain_models import PricePoint, Product, ReturnRecord, SalesRecord

logger = logging.getLogger(__name__)


class AnalyticsStore:
    """Snapshot of the data the analytics read from."""

    def __init__(self) -> None:
        self._products: Dict[str, Product] = {}
        self._sales: List[SalesRecord] = []
        self._price_history: Dict[str, List[PricePoint]] = defaultdict(list)
        self._returns: List[ReturnRecord] = []

    # --- writes ---

    def upsert_products(
        self, products: Iterable[Product], effective_date: dt.datetime | None = None
    ) -> int:
        """Insert or replace products, recording a price point on every price change."""
        when = effective_date or dt.datetime.now()
        count = 0
        for product in products:
            existing = self._products.get(product.id)
            if existing is None or existing.selling_price != product.selling_price:
                self._price_history[product.id].append(
                    PricePoint(product_id=product.id, price=product.selling_price, effective_date=when)
                )
            self._products[product.id] = product
            count += 1
        return count

    def add_sales(self, records: Iterable[SalesRecord]) -> int:
        new_records = list(records)
        self._sales.extend(new_records)
        self._sales.sort(key=lambda rec: rec.date)
        return len(new_records)

    def add_price_history(self, points: Iterable[PricePoint]) -> int:
        count = 0
        touched: set[str] = set()
        for point in points:
            self._price_history[point.product_id].append(point)
            touched.add(point.product_id)
            count += 1
        for product_id in touched:
            self._price_history[product_id].sort(key=lambda p: p.effective_date)
        return count

    def add_returns(self, records: Iterable[ReturnRecord]) -> int:
        new_records = list(records)
        self._returns.extend(new_records)
        return len(new_records)

    def clear(self) -> None:
        self._products.clear()
        self._sales.clear()
        self._price_history.clear()
        self._returns.clear()

    # --- queries ---

    def get_products(self) -> list[Product]:
        return list(self._products.values())

    def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    def get_sales(
        self,
        product_id: str | None = None,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> list[SalesRecord]:
        return [
            rec
            for rec in self._sales
            if (product_id is None or rec.product_id == product_id)
            and (start is None or rec.date >= start)
            and (end is None or rec.date <= end)
        ]

    def get_price_history(
        self,
        product_id: str,
        start: dt.datetime | None = None,
        end: dt.datetime | None = None,
    ) -> list[PricePoint]:
        return [
            point
            for point in self._price_history.get(product_id, [])
            if (start is None or point.effective_date >= start)
            and (end is None or point.effective_date <= end)
        ]

    def get_returns(self, start: dt.datetime | None = None) -> list[ReturnRecord]:
        return [rec for rec in self._returns if start is None or rec.date >= start]

    def sale_item_aggregates(
        self, start: dt.datetime | None = None, end: dt.datetime | None = None
    ) -> dict[str, tuple[int, int]]:
        """Map product id to (summed quantity, number of sale lines)."""
        totals: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for rec in self.get_sales(start=start, end=end):
            totals[rec.product_id][0] += rec.quantity
            totals[rec.product_id][1] += 1
        return {pid: (qty, lines) for pid, (qty, lines) in totals.items()}


_STORE: AnalyticsStore | None = None
_STORE_LOCK = threading.Lock()


def init_store() -> AnalyticsStore:
    """Create the process-wide store once; later calls return the same instance."""
    global _STORE
    with _STORE_LOCK:
        if _STORE is None:
            _STORE = AnalyticsStore()
            logger.debug("Analytics store initialised")
        return _STORE


def get_store() -> AnalyticsStore:
    """Return the process-wide store, initialising it on first use."""
    return _STORE if _STORE is not None else init_store()


def teardown_store() -> None:
    """Drop the process-wide store and everything loaded into it."""
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.clear()
            _STORE = None
            logger.debug("Analytics store torn down")
