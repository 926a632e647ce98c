"""Field coercion and business rules for buyer leads.

A raw row (CSV cells or a JSON body) is first normalized to trimmed text,
then every field is coerced on its own into a :class:`FieldResult`. The
ordered ``ROW_RULES`` then turn those per-field results into violations and
add the cross-field checks. Every rule runs on every row, so a row reports
all of its problems in one pass.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from crm.core.exceptions import ValidationError
from crm.schemas.buyer import BuyerRecord
from crm.schemas.enums import (
    BHK_MAX,
    BHK_MIN,
    BHK_STUDIO,
    RESIDENTIAL_PROPERTY_TYPES,
    BuyerStatus,
    Choice,
    City,
    LeadSource,
    PropertyType,
    Purpose,
    Timeline,
)
from crm.services.normalization import (
    MAX_INTEGER_DIGITS,
    is_valid_email,
    is_valid_phone,
    normalize_text,
    parse_integer,
    parse_tags,
    snake_case,
)

# Column order shared by CSV import and export.
FIELD_NAMES: Tuple[str, ...] = (
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "notes",
    "tags",
    "status",
)

TEXT_FIELDS = ("fullName", "email", "phone", "notes")
NUMERIC_FIELDS = ("bhk", "budgetMin", "budgetMax")
ENUM_FIELDS = ("city", "propertyType", "purpose", "timeline", "source", "status")

FULL_NAME_MIN_LENGTH = 2
FULL_NAME_MAX_LENGTH = 80
NOTES_MAX_LENGTH = 1000


@dataclass(frozen=True)
class Violation:
    field: Optional[str]
    message: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class FieldResult:
    """Outcome of coercing one raw field: a value or an error message."""

    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "FieldResult":
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> "FieldResult":
        return cls(error=message)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def present(self) -> bool:
        return self.ok and self.value is not None


@dataclass(frozen=True)
class PartialRow:
    raw: Mapping[str, str]
    fields: Mapping[str, FieldResult]

    def result(self, name: str) -> FieldResult:
        return self.fields[name]


@dataclass(frozen=True)
class ValidationOutcome:
    record: Optional[BuyerRecord] = None
    violations: Tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return self.record is not None and not self.violations

    def error_details(self) -> List[Dict[str, Optional[str]]]:
        return [violation.to_dict() for violation in self.violations]


RowRule = Callable[[PartialRow], List[Violation]]
Coercer = Callable[[str], FieldResult]


# Field coercers

def _coerce_full_name(raw: str) -> FieldResult:
    if not raw:
        return FieldResult.failure("Full name is required")
    if len(raw) < FULL_NAME_MIN_LENGTH:
        return FieldResult.failure(f"Full name must be at least {FULL_NAME_MIN_LENGTH} characters")
    if len(raw) > FULL_NAME_MAX_LENGTH:
        return FieldResult.failure(f"Full name must not exceed {FULL_NAME_MAX_LENGTH} characters")
    return FieldResult.success(raw)


def _coerce_email(raw: str) -> FieldResult:
    if not raw:
        return FieldResult.success(None)
    if not is_valid_email(raw):
        return FieldResult.failure("Invalid email format")
    return FieldResult.success(raw)


def _coerce_phone(raw: str) -> FieldResult:
    if not raw:
        return FieldResult.failure("Phone is required")
    if not is_valid_phone(raw):
        return FieldResult.failure("Phone must be 10-15 digits")
    return FieldResult.success(raw)


def _coerce_notes(raw: str) -> FieldResult:
    if not raw:
        return FieldResult.success(None)
    if len(raw) > NOTES_MAX_LENGTH:
        return FieldResult.failure(f"Notes must not exceed {NOTES_MAX_LENGTH} characters")
    return FieldResult.success(raw)


def _coerce_bhk(raw: str) -> FieldResult:
    if not raw:
        return FieldResult.success(None)
    if raw == BHK_STUDIO:
        return FieldResult.success(BHK_STUDIO)
    number = parse_integer(raw)
    if number is None or not BHK_MIN <= number <= BHK_MAX:
        return FieldResult.failure(
            f"BHK must be a number between {BHK_MIN} and {BHK_MAX} or '{BHK_STUDIO}'"
        )
    return FieldResult.success(number)


def _budget_coercer(label: str) -> Coercer:
    def coerce(raw: str) -> FieldResult:
        if not raw:
            return FieldResult.success(None)
        number = parse_integer(raw)
        if number is None and raw.lstrip("+-").isdigit():
            return FieldResult.failure(f"{label} must not exceed {MAX_INTEGER_DIGITS} digits")
        if number is None:
            return FieldResult.failure(f"{label} must be a whole number")
        if number <= 0:
            return FieldResult.failure(f"{label} must be positive")
        return FieldResult.success(number)

    return coerce


def _choice_coercer(choices: Type[Choice], label: str, default: Optional[Choice] = None) -> Coercer:
    lookup = {member.value: member for member in choices}

    def coerce(raw: str) -> FieldResult:
        if not raw:
            if default is not None:
                return FieldResult.success(default)
            return FieldResult.failure(f"{label} is required")
        member = lookup.get(raw)
        if member is None:
            return FieldResult.failure(
                f"Invalid {label.lower()} '{raw}'. Expected one of: {', '.join(choices.values())}"
            )
        return FieldResult.success(member)

    return coerce


def _coerce_tags(raw: str) -> FieldResult:
    return FieldResult.success(parse_tags(raw))


COERCERS: Dict[str, Coercer] = {
    "fullName": _coerce_full_name,
    "email": _coerce_email,
    "phone": _coerce_phone,
    "city": _choice_coercer(City, "City"),
    "propertyType": _choice_coercer(PropertyType, "Property type"),
    "bhk": _coerce_bhk,
    "purpose": _choice_coercer(Purpose, "Purpose"),
    "budgetMin": _budget_coercer("Budget minimum"),
    "budgetMax": _budget_coercer("Budget maximum"),
    "timeline": _choice_coercer(Timeline, "Timeline"),
    "source": _choice_coercer(LeadSource, "Source"),
    "notes": _coerce_notes,
    "tags": _coerce_tags,
    "status": _choice_coercer(BuyerStatus, "Status", default=BuyerStatus.NEW),
}


# Row rules

def _field_failures(row: PartialRow, names: Sequence[str]) -> List[Violation]:
    violations = []
    for name in names:
        result = row.result(name)
        if not result.ok:
            violations.append(Violation(field=name, message=result.error))
    return violations


def check_text_fields(row: PartialRow) -> List[Violation]:
    return _field_failures(row, TEXT_FIELDS)


def check_numeric_fields(row: PartialRow) -> List[Violation]:
    return _field_failures(row, NUMERIC_FIELDS)


def check_enum_fields(row: PartialRow) -> List[Violation]:
    return _field_failures(row, ENUM_FIELDS)


def check_bhk_matches_property_type(row: PartialRow) -> List[Violation]:
    property_type = row.result("propertyType")
    bhk = row.result("bhk")
    if not property_type.ok or not bhk.ok:
        return []

    residential = property_type.value in RESIDENTIAL_PROPERTY_TYPES
    if residential and bhk.value is None:
        return [Violation("bhk", "BHK is required for Apartment and Villa property types")]
    if not residential and bhk.value is not None:
        return [Violation("bhk", f"BHK must be empty for {property_type.value.value} property type")]
    return []


def check_budget_range(row: PartialRow) -> List[Violation]:
    budget_min = row.result("budgetMin")
    budget_max = row.result("budgetMax")
    if budget_min.present and budget_max.present and budget_max.value < budget_min.value:
        return [Violation("budgetMax", "Budget maximum must be greater than or equal to budget minimum")]
    return []


ROW_RULES: Tuple[RowRule, ...] = (
    check_text_fields,
    check_numeric_fields,
    check_enum_fields,
    check_bhk_matches_property_type,
    check_budget_range,
)


def normalize_row(row: Mapping[str, Any]) -> Dict[str, str]:
    """
    Reduce a raw row to trimmed text for every known field.

    Keys may be camelCase (CSV headers, JSON) or snake_case; unknown keys
    are ignored.
    """
    normalized: Dict[str, str] = {}
    for name in FIELD_NAMES:
        value = row.get(name)
        if value is None:
            value = row.get(snake_case(name))
        normalized[name] = normalize_text(value)
    return normalized


def coerce_row(row: Mapping[str, Any]) -> PartialRow:
    raw = normalize_row(row)
    return PartialRow(
        raw=raw,
        fields={name: COERCERS[name](raw[name]) for name in FIELD_NAMES},
    )


def _build_record(row: PartialRow) -> BuyerRecord:
    # Validated keys are the camelCase aliases of BuyerRecord.
    values = {name: row.result(name).value for name in FIELD_NAMES}
    return BuyerRecord.model_validate(values)


def validate_buyer_row(
    row: Mapping[str, Any],
    rules: Sequence[RowRule] = ROW_RULES,
) -> ValidationOutcome:
    """Validate one raw row, collecting every violation before deciding."""
    partial = coerce_row(row)
    violations = tuple(violation for rule in rules for violation in rule(partial))
    if violations:
        return ValidationOutcome(violations=violations)
    return ValidationOutcome(record=_build_record(partial))


def ensure_valid_buyer(row: Mapping[str, Any]) -> BuyerRecord:
    """Return the validated record or raise :class:`ValidationError`."""
    outcome = validate_buyer_row(row)
    if not outcome.is_valid:
        raise ValidationError(
            message="Validation failed",
            code="validation_error",
            details={"errors": outcome.error_details()},
        )
    return outcome.record
