"""Line and field splitting for buyer CSV files.

The dialect is deliberately small: comma separated, double-quote wrapped
fields, ``""`` as an escaped quote. Text is split into physical lines before
fields are tokenized, so a quoted field cannot span lines.
"""
from __future__ import annotations

from typing import List

QUOTE = '"'
DELIMITER = ","


def split_lines(text: str) -> List[str]:
    """Return the lines of ``text`` that are not blank once trimmed."""
    return [line for line in text.split("\n") if line.strip()]


def parse_csv_line(line: str) -> List[str]:
    """
    Split one physical line into trimmed field values.

    Malformed quoting never raises: an unmatched quote simply leaves the
    rest of the line in quoted mode.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == QUOTE:
            if in_quotes and i + 1 < length and line[i + 1] == QUOTE:
                current.append(QUOTE)
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == DELIMITER and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_header(line: str) -> List[str]:
    """Tokenize a header line, dropping any quote characters from names."""
    return [name.replace(QUOTE, "").strip() for name in parse_csv_line(line)]
