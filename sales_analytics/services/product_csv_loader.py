"""Utilities for loading product snapshots from CSV files."""
from __future__ import annotations

from typing import Iterable, List

from ..domain_models import Product
from .uploads import dict_reader


class ProductCsvError(Exception):
    """Raised when a product CSV file cannot be parsed."""


REQUIRED_COLUMNS = {"id", "name", "selling_price"}


def _optional_number(raw: str | None, cast, field_name: str, line_number: int):
    if raw is None or raw.strip() == "":
        return cast(0)
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ProductCsvError(f"Row {line_number}: {field_name} must be a number") from exc


def load_products_from_csv(file_obj: Iterable[bytes] | Iterable[str]) -> List[Product]:
    """Parse products from a CSV upload.

    The CSV file must include headers ``id``, ``name`` and ``selling_price``;
    ``unit_cost``, ``stock_quantity`` and ``category`` are optional.
    """

    reader = dict_reader(file_obj, REQUIRED_COLUMNS, ProductCsvError)

    products: list[Product] = []
    for line_number, row in enumerate(reader, start=2):
        product_id = (row.get("id") or "").strip()
        name = (row.get("name") or "").strip()

        if not product_id or not name:
            raise ProductCsvError(f"Row {line_number}: id and name are required")

        try:
            selling_price = float((row.get("selling_price") or "").strip())
        except ValueError as exc:
            raise ProductCsvError(f"Row {line_number}: selling_price must be a number") from exc

        if selling_price < 0:
            raise ProductCsvError(f"Row {line_number}: selling_price cannot be negative")

        products.append(
            Product(
                id=product_id,
                name=name,
                selling_price=selling_price,
                unit_cost=_optional_number(row.get("unit_cost"), float, "unit_cost", line_number),
                stock_quantity=_optional_number(
                    row.get("stock_quantity"), int, "stock_quantity", line_number
                ),
                category=(row.get("category") or "").strip() or None,
            )
        )

    if not products:
        raise ProductCsvError("CSV contains no product rows")

    return products


__all__ = ["ProductCsvError", "load_products_from_csv"]
