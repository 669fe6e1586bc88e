from __future__ import annotations

from typing import IO, List

from ..domain_models import SalesRecord
from .uploads import dict_reader, parse_datetime


class SalesCsvError(Exception):
    """Custom exception for sales CSV parsing errors."""


REQUIRED_COLUMNS = {"date", "product_id", "quantity", "unit_price"}


def load_sales_from_csv(file_obj: IO) -> List[SalesRecord]:
    """
    Parse a sales history CSV file into SalesRecord objects, oldest first.

    The expected CSV format is:
    date,product_id,quantity,unit_price,total_amount
    2024-01-05 14:30:00,P-100,2,19.99,39.98

    ``total_amount`` is optional and defaults to ``quantity * unit_price``.
    """

    reader = dict_reader(file_obj, REQUIRED_COLUMNS, SalesCsvError)
    records: List[SalesRecord] = []

    for index, row in enumerate(reader, start=2):
        if all((value or "").strip() == "" for value in row.values() if isinstance(value, str)):
            continue

        date_str = (row.get("date") or "").strip()
        product_id = (row.get("product_id") or "").strip()
        if not date_str or not product_id:
            raise SalesCsvError(f"Row {index} is missing required fields")

        try:
            date = parse_datetime(date_str)
        except ValueError as exc:
            raise SalesCsvError(f"Row {index} has invalid date: {date_str}") from exc

        quantity_str = (row.get("quantity") or "").strip()
        try:
            quantity = int(quantity_str)
        except ValueError as exc:
            raise SalesCsvError(f"Row {index} has invalid quantity: {quantity_str}") from exc

        price_str = (row.get("unit_price") or "").strip()
        try:
            unit_price = float(price_str)
        except ValueError as exc:
            raise SalesCsvError(f"Row {index} has invalid unit_price: {price_str}") from exc

        total_str = (row.get("total_amount") or "").strip()
        try:
            total_amount = float(total_str) if total_str else quantity * unit_price
        except ValueError as exc:
            raise SalesCsvError(f"Row {index} has invalid total_amount: {total_str}") from exc

        records.append(
            SalesRecord(
                date=date,
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                total_amount=total_amount,
            )
        )

    records.sort(key=lambda rec: rec.date)
    return records
