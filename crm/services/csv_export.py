"""Render buyer records as CSV text with a fixed column layout."""
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from crm.services.buyer_validation import FIELD_NAMES
from crm.services.normalization import snake_case

CSV_CONTENT_TYPE = "text/csv"
CSV_HEADER = ",".join(FIELD_NAMES)

# Rendered bare; every other column is quoted.
NUMERIC_COLUMNS = frozenset({"budgetMin", "budgetMax"})

CSV_SAMPLE_DATA = "\n".join([
    CSV_HEADER,
    '"John Doe","john@example.com","9876543210","Chandigarh","Apartment","2","Buy",5000000,7000000,"0-3m","Website","Looking for 2BHK in Sector 22","urgent","New"',
    '"Jane Smith","jane@example.com","9876543211","Mohali","Villa","3","Buy",8000000,12000000,"3-6m","Referral","Prefers gated community","premium,gated","Qualified"',
    '"Ravi Kumar","","9876543212","Zirakpur","Plot","","Buy",,3000000,"Exploring","Walk-in","","","New"',
])


def _read(record: Any, name: str) -> Any:
    """Fetch a column from a mapping or an object, camelCase or snake_case."""
    if isinstance(record, Mapping):
        value = record.get(name)
        return value if value is not None else record.get(snake_case(name))
    value = getattr(record, snake_case(name), None)
    return value if value is not None else getattr(record, name, None)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple)):
        return ",".join(_text(item) for item in value)
    return str(value)


def quote(value: Any) -> str:
    return '"' + _text(value).replace('"', '""') + '"'


def _number(value: Any) -> str:
    if value is None or value == "":
        return ""
    return _text(value)


def format_row(record: Any) -> str:
    cells = []
    for name in FIELD_NAMES:
        value = _read(record, name)
        cells.append(_number(value) if name in NUMERIC_COLUMNS else quote(value))
    return ",".join(cells)


def generate_csv_content(records: Iterable[Any]) -> str:
    """Header line plus one line per record, newline separated."""
    return "\n".join([CSV_HEADER, *(format_row(record) for record in records)])


def export_filename(day: Optional[date] = None) -> str:
    day = day or date.today()
    return f"buyers-export-{day.isoformat()}.csv"
