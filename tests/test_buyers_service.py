from datetime import timedelta

import pytest
from sqlalchemy import func, select

from crm.core.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from crm.models.buyer import Buyer, BuyerHistory
from crm.schemas.buyer import BuyerFilter
from crm.services.buyer_validation import ensure_valid_buyer
from crm.services.buyers import (
    create_buyer,
    delete_buyer,
    get_buyer_history,
    get_buyer_or_404,
    list_all_buyers,
    list_buyers,
    update_buyer,
)

OWNER = "user-1"


async def _create(session, payload, owner=OWNER, **overrides):
    record = ensure_valid_buyer({**payload, **overrides})
    return await create_buyer(session, record, owner)


@pytest.mark.asyncio
async def test_create_buyer_stores_columns_and_history(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    stored = await get_buyer_or_404(db_session, buyer.id)
    assert stored.full_name == "Asha Verma"
    assert stored.bhk == "2"
    assert stored.tags == "hot,family"
    assert stored.status == "New"
    assert stored.as_row()["tags"] == ["hot", "family"]
    assert stored.as_row()["bhk"] == 2

    history = await get_buyer_history(db_session, buyer.id)
    assert [entry.field for entry in history] == ["created"]
    assert history[0].changed_by == OWNER


@pytest.mark.asyncio
async def test_get_missing_buyer(db_session):
    with pytest.raises(NotFoundError):
        await get_buyer_or_404(db_session, 999)


@pytest.mark.asyncio
async def test_update_records_changed_fields(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    updated = await update_buyer(
        db_session,
        buyer.id,
        {"status": "Contacted", "budgetMax": 8000000, "notes": "Prefers a park-facing unit"},
        OWNER,
        buyer.updated_at,
    )

    assert updated.status == "Contacted"
    assert updated.budget_max == 8000000
    history = await get_buyer_history(db_session, buyer.id)
    changes = {entry.field: (entry.old_value, entry.new_value) for entry in history if entry.field != "created"}
    assert changes == {
        "status": ("New", "Contacted"),
        "budgetMax": ("7000000", "8000000"),
    }


@pytest.mark.asyncio
async def test_update_validates_merged_record(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    with pytest.raises(ValidationError) as exc_info:
        await update_buyer(db_session, buyer.id, {"propertyType": "Plot"}, OWNER, buyer.updated_at)

    fields = [error["field"] for error in exc_info.value.details["errors"]]
    assert fields == ["bhk"]


@pytest.mark.asyncio
async def test_update_with_stale_timestamp_conflicts(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await update_buyer(
            db_session,
            buyer.id,
            {"status": "Qualified"},
            OWNER,
            buyer.updated_at - timedelta(seconds=5),
        )

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_update_requires_ownership(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    with pytest.raises(AuthorizationError) as exc_info:
        await update_buyer(db_session, buyer.id, {"status": "Qualified"}, "someone-else", buyer.updated_at)

    assert exc_info.value.message == "Forbidden: You can only edit your own buyers"


@pytest.mark.asyncio
async def test_delete_cascades_history(db_session, buyer_payload):
    buyer = await _create(db_session, buyer_payload)

    with pytest.raises(AuthorizationError):
        await delete_buyer(db_session, buyer.id, "someone-else")

    await delete_buyer(db_session, buyer.id, OWNER)

    assert await db_session.get(Buyer, buyer.id) is None
    remaining = await db_session.execute(select(func.count()).select_from(BuyerHistory))
    assert remaining.scalar_one() == 0


@pytest.mark.asyncio
async def test_list_filters_search_and_pagination(db_session, buyer_payload):
    await _create(db_session, buyer_payload)
    await _create(db_session, buyer_payload, fullName="Rohit Sharma", phone="9999900000", city="Mohali")
    await _create(
        db_session,
        buyer_payload,
        fullName="Neha Gill",
        email="neha@example.com",
        phone="8888800000",
        propertyType="Plot",
        bhk=None,
        timeline=">6m",
    )

    buyers, total = await list_buyers(db_session, BuyerFilter(city="Mohali"))
    assert total == 1
    assert buyers[0].full_name == "Rohit Sharma"

    buyers, total = await list_buyers(db_session, BuyerFilter(search="NEHA"))
    assert [buyer.full_name for buyer in buyers] == ["Neha Gill"]

    buyers, total = await list_buyers(db_session, BuyerFilter(search="99999"))
    assert [buyer.full_name for buyer in buyers] == ["Rohit Sharma"]

    buyers, total = await list_buyers(db_session, BuyerFilter(limit=2, page=2, sortBy="fullName", sortOrder="asc"))
    assert total == 3
    assert [buyer.full_name for buyer in buyers] == ["Rohit Sharma"]

    everything = await list_all_buyers(db_session, BuyerFilter(), max_rows=2)
    assert len(everything) == 2
