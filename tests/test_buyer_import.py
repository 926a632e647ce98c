import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from crm.core.exceptions import ImportLimitExceededError
from crm.models.buyer import Buyer
from crm.schemas.csv_import import ImportOutcome
from crm.services.buyer_import import enforce_import_cap, import_buyers, source_row_numbers
from crm.services.buyers import create_buyer
from crm.services.csv_import import parse_csv_text

HEADER = "fullName,email,phone,city,propertyType,purpose,timeline,source"


def _csv(count, bad_rows=()):
    lines = [HEADER]
    for index in range(count):
        phone = "12" if index in bad_rows else f"98765{index:05d}"
        lines.append(f"Buyer {index},,{phone},Chandigarh,Plot,Buy,3-6m,Website")
    return "\n".join(lines)


async def _buyer_count(session):
    return (await session.execute(select(func.count()).select_from(Buyer))).scalar_one()


@pytest.mark.asyncio
async def test_import_creates_valid_rows_only(db_session):
    outcome = parse_csv_text(_csv(4, bad_rows={1}))

    report = await import_buyers(db_session, outcome, "owner-1")

    response = report.to_response()
    assert response.success
    assert response.total_rows == 4
    assert response.valid_rows == 3
    assert response.imported_count == 3
    assert [error.row for error in response.validation_errors] == [3]
    assert response.import_errors == []
    assert await _buyer_count(db_session) == 3


def test_cap_is_checked_against_valid_rows():
    outcome = parse_csv_text(_csv(3, bad_rows={0}))

    enforce_import_cap(outcome, max_rows=2)

    with pytest.raises(ImportLimitExceededError) as exc_info:
        enforce_import_cap(outcome, max_rows=1)
    assert exc_info.value.message == "Too many rows. Maximum 1 rows allowed per import."
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_cap_rejects_before_any_create(db_session):
    outcome = parse_csv_text(_csv(3))

    with pytest.raises(ImportLimitExceededError):
        await import_buyers(db_session, outcome, "owner-1", max_rows=2)

    assert await _buyer_count(db_session) == 0


@pytest.mark.asyncio
async def test_failed_record_is_reported_and_import_continues(db_session):
    outcome = parse_csv_text(_csv(3))

    async def flaky_creator(session, record, owner_id):
        if record.full_name == "Buyer 1":
            raise IntegrityError("INSERT INTO buyers", {}, Exception("constraint failed"))
        return await create_buyer(session, record, owner_id, commit=False)

    report = await import_buyers(db_session, outcome, "owner-1", creator=flaky_creator)

    assert [buyer.full_name for buyer in report.imported] == ["Buyer 0", "Buyer 2"]
    [failure] = report.import_errors
    assert failure.row == 3
    assert failure.data["fullName"] == "Buyer 1"
    assert await _buyer_count(db_session) == 2


@pytest.mark.asyncio
async def test_imported_buyers_belong_to_caller(db_session):
    report = await import_buyers(db_session, parse_csv_text(_csv(2)), "owner-9")

    assert {buyer.owner_id for buyer in report.imported} == {"owner-9"}


@pytest.mark.asyncio
async def test_unexpected_creator_error_is_reported_and_import_continues(db_session):
    outcome = parse_csv_text(_csv(3))

    async def broken_creator(session, record, owner_id):
        if record.full_name == "Buyer 0":
            raise OverflowError("Python int too large to convert to SQLite INTEGER")
        return await create_buyer(session, record, owner_id, commit=False)

    report = await import_buyers(db_session, outcome, "owner-1", creator=broken_creator)

    assert [buyer.full_name for buyer in report.imported] == ["Buyer 1", "Buyer 2"]
    [failure] = report.import_errors
    assert failure.row == 2
    assert "too large" in failure.message
    assert await _buyer_count(db_session) == 2


@pytest.mark.asyncio
async def test_outcome_without_row_numbers_still_imports(db_session):
    parsed = parse_csv_text(_csv(2))
    outcome = ImportOutcome(valid_rows=parsed.valid_rows, total_data_rows=2)

    report = await import_buyers(db_session, outcome, "owner-1")

    assert len(report.imported) == 2
    assert report.to_response().imported_count == 2
    assert source_row_numbers(outcome) == [2, 3]


@pytest.mark.asyncio
async def test_largest_budget_is_stored(db_session):
    text = f"{HEADER},budgetMax\nBig Spender,,9876543210,Chandigarh,Plot,Buy,3-6m,Website,{'9' * 18}"

    report = await import_buyers(db_session, parse_csv_text(text), "owner-1")

    assert report.import_errors == []
    assert report.imported[0].budget_max == int("9" * 18)
