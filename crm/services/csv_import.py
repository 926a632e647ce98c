"""Turn CSV text into validated buyer records and per-row errors."""
from __future__ import annotations

from typing import Dict, List

from crm.core.logging import get_structlog_logger
from crm.schemas.csv_import import ImportOutcome, RowError
from crm.services.buyer_validation import validate_buyer_row
from crm.utils.csv_parser import parse_csv_line, parse_header, split_lines

logger = get_structlog_logger(__name__)

# The header occupies row 1; the first data line is row 2.
FIRST_DATA_ROW = 2


def _zip_row(headers: List[str], values: List[str]) -> Dict[str, str]:
    return {
        header: values[index] if index < len(values) else ""
        for index, header in enumerate(headers)
    }


def parse_csv_text(text: str) -> ImportOutcome:
    """
    Parse a whole CSV document into an :class:`ImportOutcome`.

    Blank lines are skipped everywhere and are not counted. A failing row
    never stops the rows after it.
    """
    lines = split_lines(text)
    if not lines:
        return ImportOutcome()

    headers = parse_header(lines[0])
    data_lines = lines[1:]
    outcome = ImportOutcome(total_data_rows=len(data_lines))

    for row_number, line in enumerate(data_lines, start=FIRST_DATA_ROW):
        row = _zip_row(headers, parse_csv_line(line))
        result = validate_buyer_row(row)

        if result.is_valid:
            outcome.valid_rows.append(result.record)
            outcome.valid_row_numbers.append(row_number)
            continue

        for violation in result.violations:
            outcome.errors.append(
                RowError(
                    row=row_number,
                    field=violation.field,
                    message=violation.message,
                    raw_data=line,
                )
            )

    logger.info(
        "csv_import.parsed",
        total_rows=outcome.total_data_rows,
        valid_rows=len(outcome.valid_rows),
        errors=len(outcome.errors),
    )
    return outcome
