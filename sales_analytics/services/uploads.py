"""Helpers shared by the CSV loaders."""
from __future__ import annotations

import csv
import datetime as dt
import io
from typing import Iterable


def open_text_stream(file_obj: Iterable[bytes] | Iterable[str]) -> io.StringIO:
    """Return a text stream for an uploaded file, a text file or raw chunks."""
    if hasattr(file_obj, "read"):
        content = file_obj.read()
    else:
        chunks = list(file_obj)
        content = b"".join(chunks) if chunks and isinstance(chunks[0], bytes) else "".join(chunks)  # type: ignore[arg-type]

    if isinstance(content, bytes):
        text = content.decode("utf-8-sig")
    else:
        text = content

    return io.StringIO(text)


def dict_reader(file_obj, required: set[str], error_cls: type[Exception]) -> csv.DictReader:
    """A DictReader over the upload, checked for the required header columns."""
    reader = csv.DictReader(open_text_stream(file_obj))
    headers = {name.strip() for name in reader.fieldnames or []}
    missing = required - headers
    if missing:
        raise error_cls(f"CSV is missing required columns: {', '.join(sorted(missing))}")
    reader.fieldnames = [name.strip() for name in reader.fieldnames or []]
    return reader


def parse_datetime(value: str) -> dt.datetime:
    """Parse ``YYYY-MM-DD`` or an ISO timestamp into a naive datetime."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(text)
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed
