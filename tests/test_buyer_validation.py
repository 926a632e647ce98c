import pytest

from crm.core.exceptions import ValidationError
from crm.schemas.enums import BuyerStatus, City, PropertyType, Timeline
from crm.services.buyer_validation import (
    ROW_RULES,
    check_budget_range,
    ensure_valid_buyer,
    validate_buyer_row,
)


def _row(**overrides):
    row = {
        "fullName": "John Doe",
        "email": "john@example.com",
        "phone": "1234567890",
        "city": "Chandigarh",
        "propertyType": "Plot",
        "purpose": "Buy",
        "timeline": "3-6m",
        "source": "Website",
    }
    row.update(overrides)
    return row


def _fields(outcome):
    return [violation.field for violation in outcome.violations]


def test_minimal_row_is_valid():
    outcome = validate_buyer_row(_row())

    assert outcome.is_valid
    record = outcome.record
    assert record.full_name == "John Doe"
    assert record.city is City.CHANDIGARH
    assert record.property_type is PropertyType.PLOT
    assert record.timeline is Timeline.THREE_TO_SIX_MONTHS
    assert record.status is BuyerStatus.NEW
    assert record.bhk is None
    assert record.tags == []


def test_enum_values_must_match_exactly():
    outcome = validate_buyer_row(_row(city="chandigarh", propertyType="PLOT", timeline="3-6M", source="walk-in"))

    assert not outcome.is_valid
    assert _fields(outcome) == ["city", "propertyType", "timeline", "source"]


def test_canonical_enum_spelling_is_accepted():
    outcome = validate_buyer_row(_row(city="Mohali", source="Walk-in"))

    assert outcome.is_valid
    assert outcome.record.city is City.MOHALI
    assert outcome.record.source.value == "Walk-in"


def test_every_invalid_field_is_reported():
    outcome = validate_buyer_row({
        "fullName": "",
        "email": "invalid-email",
        "phone": "123",
        "city": "InvalidCity",
        "propertyType": "InvalidType",
        "purpose": "InvalidPurpose",
        "timeline": "InvalidTimeline",
        "source": "InvalidSource",
    })

    assert not outcome.is_valid
    assert outcome.record is None
    assert set(_fields(outcome)) == {
        "fullName", "email", "phone", "city", "propertyType", "purpose", "timeline", "source",
    }


def test_invalid_enum_message_lists_allowed_values():
    outcome = validate_buyer_row(_row(city="Atlantis"))

    [violation] = outcome.violations
    assert violation.field == "city"
    assert "Atlantis" in violation.message
    assert "Chandigarh" in violation.message


def test_bhk_required_for_residential():
    outcome = validate_buyer_row(_row(propertyType="Apartment"))

    assert _fields(outcome) == ["bhk"]
    assert outcome.violations[0].message == "BHK is required for Apartment and Villa property types"


@pytest.mark.parametrize("bhk, expected", [("2", 2), ("10", 10), ("Studio", "Studio"), (3, 3)])
def test_bhk_accepted_values(bhk, expected):
    outcome = validate_buyer_row(_row(propertyType="Villa", bhk=bhk))

    assert outcome.is_valid
    assert outcome.record.bhk == expected


@pytest.mark.parametrize("bhk", ["0", "11", "2.5", "two", "studio", "STUDIO"])
def test_bhk_out_of_range(bhk):
    outcome = validate_buyer_row(_row(propertyType="Apartment", bhk=bhk))

    assert _fields(outcome) == ["bhk"]


def test_bhk_rejected_for_non_residential():
    outcome = validate_buyer_row(_row(propertyType="Office", bhk="2"))

    assert _fields(outcome) == ["bhk"]
    assert "Office" in outcome.violations[0].message


def test_budget_max_below_min():
    outcome = validate_buyer_row(_row(budgetMin="5000000", budgetMax="4000000"))

    assert _fields(outcome) == ["budgetMax"]


def test_budget_equal_bounds_allowed():
    outcome = validate_buyer_row(_row(budgetMin="5000000", budgetMax="5000000"))

    assert outcome.is_valid
    assert outcome.record.budget_min == 5000000


@pytest.mark.parametrize("value", ["abc", "1.5", "-10", "0"])
def test_budget_must_be_positive_whole_number(value):
    outcome = validate_buyer_row(_row(budgetMin=value))

    assert _fields(outcome) == ["budgetMin"]


def test_budget_with_too_many_digits():
    outcome = validate_buyer_row(_row(budgetMax="1" * 19))

    assert _fields(outcome) == ["budgetMax"]
    assert outcome.violations[0].message == "Budget maximum must not exceed 18 digits"


def test_largest_budget_is_accepted():
    outcome = validate_buyer_row(_row(budgetMax="9" * 18))

    assert outcome.record.budget_max == int("9" * 18)


def test_budget_range_rule_skips_failed_fields():
    outcome = validate_buyer_row(_row(budgetMin="abc", budgetMax="10"))

    assert _fields(outcome) == ["budgetMin"]


def test_optional_text_fields_blank_become_none():
    outcome = validate_buyer_row(_row(email="  ", notes=""))

    assert outcome.is_valid
    assert outcome.record.email is None
    assert outcome.record.notes is None


def test_notes_length_limit():
    outcome = validate_buyer_row(_row(notes="x" * 1001))

    assert _fields(outcome) == ["notes"]


def test_tags_string_is_split():
    outcome = validate_buyer_row(_row(tags="hot, vip"))

    assert outcome.record.tags == ["hot", "vip"]


def test_snake_case_keys_are_accepted():
    row = _row()
    row["full_name"] = row.pop("fullName")
    row["property_type"] = row.pop("propertyType")

    assert validate_buyer_row(row).is_valid


def test_status_parsed_when_present():
    outcome = validate_buyer_row(_row(status="Qualified"))

    assert outcome.record.status is BuyerStatus.QUALIFIED


def test_custom_rule_set():
    outcome = validate_buyer_row(_row(budgetMin="10", budgetMax="5"), rules=ROW_RULES[:3])

    assert outcome.is_valid
    assert check_budget_range in ROW_RULES


def test_ensure_valid_buyer_raises_with_details():
    with pytest.raises(ValidationError) as exc_info:
        ensure_valid_buyer(_row(phone="12"))

    assert exc_info.value.status_code == 422
    assert exc_info.value.details["errors"] == [
        {"field": "phone", "message": "Phone must be 10-15 digits"},
    ]
