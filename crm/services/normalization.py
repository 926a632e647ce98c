from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_PHONE_PATTERN = re.compile(r"^[0-9]{10,15}$")
# Longer values cannot fit a 64-bit column.
MAX_INTEGER_DIGITS = 18
_INTEGER_PATTERN = re.compile(rf"^[+-]?[0-9]{{1,{MAX_INTEGER_DIGITS}}}$")


def normalize_text(value: Any) -> str:
    """Render a raw field value as trimmed text; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(normalize_text(item) for item in value)
    return str(value).strip()


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return bool(_EMAIL_PATTERN.match(email))


def is_valid_phone(phone: Optional[str]) -> bool:
    """Phone numbers are stored as 10 to 15 ASCII digits, nothing else."""
    if not phone:
        return False
    return bool(_PHONE_PATTERN.match(phone))


def parse_integer(value: str) -> Optional[int]:
    """Parse a plain decimal integer, returning ``None`` for anything else."""
    if not _INTEGER_PATTERN.match(value):
        return None
    return int(value)


def parse_tags(value: Any) -> List[str]:
    """Split comma separated tags, keeping order and duplicates."""
    text = normalize_text(value)
    return [tag.strip() for tag in text.split(",") if tag.strip()]


def join_tags(tags: Optional[Iterable[str]]) -> str:
    if not tags:
        return ""
    return ",".join(tags)


def snake_case(name: str) -> str:
    """``budgetMin`` -> ``budget_min``."""
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name)
