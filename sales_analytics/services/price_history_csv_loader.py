from __future__ import annotations

from typing import IO, List

from ..domain_models import PricePoint
from .uploads import dict_reader, parse_datetime


class PriceHistoryCsvError(Exception):
    """Raised when the price history CSV file is invalid."""


def load_price_history_from_csv(file_obj: IO) -> List[PricePoint]:
    """
    Parse a CSV file with historical selling prices.

    Expected columns:
      - product_id
      - price  (numeric, positive)
      - effective_date  (YYYY-MM-DD or ISO timestamp)

    Returns a list of PricePoint sorted by effective date ascending.
    """
    reader = dict_reader(file_obj, {"product_id", "price", "effective_date"}, PriceHistoryCsvError)

    points: List[PricePoint] = []
    for row in reader:
        try:
            product_id = row["product_id"].strip()
            price = float(row["price"].strip())
            effective_date = parse_datetime(row["effective_date"])
        except (AttributeError, KeyError, ValueError) as exc:
            raise PriceHistoryCsvError(f"Invalid price history row: {row}") from exc

        if not product_id:
            raise PriceHistoryCsvError(f"Price history row has no product_id: {row}")
        if price <= 0:
            raise PriceHistoryCsvError(f"Price must be positive: {row}")

        points.append(PricePoint(product_id=product_id, price=price, effective_date=effective_date))

    points.sort(key=lambda p: p.effective_date)
    return points
