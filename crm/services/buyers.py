"""Buyer storage: search, create, update with history, delete."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import AuthorizationError, ConcurrencyConflictError, NotFoundError
from crm.core.logging import get_structlog_logger
from crm.db.base import as_utc
from crm.models.buyer import Buyer, BuyerHistory
from crm.schemas.buyer import BuyerFilter, BuyerRecord
from crm.services.buyer_validation import FIELD_NAMES, ensure_valid_buyer
from crm.services.normalization import snake_case

logger = get_structlog_logger(__name__)

HISTORY_LIMIT = 5

SORT_COLUMNS = {
    "fullName": Buyer.full_name,
    "phone": Buyer.phone,
    "city": Buyer.city,
    "propertyType": Buyer.property_type,
    "status": Buyer.status,
    "updatedAt": Buyer.updated_at,
}


def _filtered_query(filters: BuyerFilter):
    stmt = select(Buyer)

    if filters.search:
        needle = filters.search.strip().lower()
        stmt = stmt.where(
            or_(
                func.lower(Buyer.full_name).contains(needle, autoescape=True),
                func.lower(Buyer.email).contains(needle, autoescape=True),
                Buyer.phone.contains(filters.search.strip(), autoescape=True),
            )
        )
    if filters.city:
        stmt = stmt.where(Buyer.city == filters.city.value)
    if filters.property_type:
        stmt = stmt.where(Buyer.property_type == filters.property_type.value)
    if filters.status:
        stmt = stmt.where(Buyer.status == filters.status.value)
    if filters.timeline:
        stmt = stmt.where(Buyer.timeline == filters.timeline.value)

    return stmt


def _ordered(stmt, filters: BuyerFilter):
    column = SORT_COLUMNS[filters.sort_by]
    ordering = column.asc() if filters.sort_order == "asc" else column.desc()
    return stmt.order_by(ordering, Buyer.id.desc())


async def list_buyers(session: AsyncSession, filters: BuyerFilter) -> Tuple[List[Buyer], int]:
    """One page of matching buyers plus the total match count."""
    stmt = _filtered_query(filters)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total_count = (await session.execute(count_stmt)).scalar_one()

    page_stmt = _ordered(stmt, filters).offset((filters.page - 1) * filters.limit).limit(filters.limit)
    buyers = list((await session.execute(page_stmt)).scalars().all())
    return buyers, total_count


async def list_all_buyers(session: AsyncSession, filters: BuyerFilter, max_rows: int) -> List[Buyer]:
    """Every matching buyer up to ``max_rows``, ignoring pagination."""
    stmt = _ordered(_filtered_query(filters), filters).limit(max_rows)
    return list((await session.execute(stmt)).scalars().all())


async def get_buyer_or_404(session: AsyncSession, buyer_id: int) -> Buyer:
    buyer = await session.get(Buyer, buyer_id)
    if buyer is None:
        raise NotFoundError(
            message="Buyer not found",
            details={"buyer_id": buyer_id},
        )
    return buyer


async def get_buyer_history(
    session: AsyncSession,
    buyer_id: int,
    limit: int = HISTORY_LIMIT,
) -> List[BuyerHistory]:
    stmt = (
        select(BuyerHistory)
        .where(BuyerHistory.buyer_id == buyer_id)
        .order_by(BuyerHistory.changed_at.desc(), BuyerHistory.id.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


def ensure_owner(buyer: Buyer, user_id: str, action: str = "edit") -> None:
    if buyer.owner_id != user_id:
        raise AuthorizationError(
            message=f"Forbidden: You can only {action} your own buyers",
            details={"buyer_id": buyer.id},
        )


async def create_buyer(
    session: AsyncSession,
    record: BuyerRecord,
    owner_id: str,
    *,
    commit: bool = True,
) -> Buyer:
    buyer = Buyer(**Buyer.columns_from_record(record), owner_id=owner_id)
    session.add(buyer)
    await session.flush()

    session.add(
        BuyerHistory(
            buyer_id=buyer.id,
            field="created",
            old_value=None,
            new_value="Created buyer record",
            changed_by=owner_id,
        )
    )
    await session.flush()

    if commit:
        await session.commit()

    logger.info("buyer.created", buyer_id=buyer.id, owner_id=owner_id)
    return buyer


def _history_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


async def update_buyer(
    session: AsyncSession,
    buyer_id: int,
    changes: Mapping[str, Any],
    user_id: str,
    last_seen_updated_at: datetime,
) -> Buyer:
    """
    Apply a partial update after the concurrency and ownership checks.

    The patch is merged over the stored record and the merged row is
    validated as a whole, so cross-field rules still hold afterwards.
    """
    buyer = await get_buyer_or_404(session, buyer_id)
    ensure_owner(buyer, user_id)

    if as_utc(buyer.updated_at) != as_utc(last_seen_updated_at):
        logger.warning(
            "buyer.update_conflict",
            buyer_id=buyer_id,
            stored_updated_at=buyer.updated_at.isoformat(),
            client_updated_at=last_seen_updated_at.isoformat(),
        )
        raise ConcurrencyConflictError(
            details={"buyer_id": buyer_id, "updated_at": as_utc(buyer.updated_at).isoformat()},
        )

    patch = {name: value for name, value in changes.items() if name in FIELD_NAMES}
    record = ensure_valid_buyer({**buyer.as_row(), **patch})
    new_columns = Buyer.columns_from_record(record)

    changed: Dict[str, Tuple[Any, Any]] = {}
    for name in FIELD_NAMES:
        column = snake_case(name)
        old_value = getattr(buyer, column)
        if old_value != new_columns[column]:
            changed[name] = (old_value, new_columns[column])

    if not changed:
        return buyer

    for name, (old_value, new_value) in changed.items():
        setattr(buyer, snake_case(name), new_value)
        session.add(
            BuyerHistory(
                buyer_id=buyer.id,
                field=name,
                old_value=_history_text(old_value),
                new_value=_history_text(new_value),
                changed_by=user_id,
            )
        )

    await session.commit()
    logger.info("buyer.updated", buyer_id=buyer_id, fields=sorted(changed))
    return buyer


async def delete_buyer(session: AsyncSession, buyer_id: int, user_id: str) -> None:
    buyer = await get_buyer_or_404(session, buyer_id)
    ensure_owner(buyer, user_id, action="delete")

    await session.delete(buyer)
    await session.commit()
    logger.info("buyer.deleted", buyer_id=buyer_id, user_id=user_id)

