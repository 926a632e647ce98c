from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import BusinessRuleError
from crm.db.session import get_session
from crm.middleware.rate_limiter import api_rate_limit
from crm.schemas.buyer import (
    BuyerDetailResponse,
    BuyerFilter,
    BuyerHistoryResponse,
    BuyerListResponse,
    BuyerResponse,
    Pagination,
)
from crm.services.auth import get_current_user_id
from crm.services.buyer_validation import ensure_valid_buyer
from crm.services.buyers import (
    create_buyer,
    delete_buyer,
    get_buyer_history,
    get_buyer_or_404,
    list_buyers,
    update_buyer,
)

router = APIRouter(prefix="/buyers", tags=["buyers"])


def get_buyer_filter(
    search: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    property_type: Optional[str] = Query(None, alias="propertyType"),
    buyer_status: Optional[str] = Query(None, alias="status"),
    timeline: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: str = Query("updatedAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
) -> BuyerFilter:
    """Search/filter query parameters; blank values mean "no filter"."""
    raw = {
        "search": search or None,
        "city": city or None,
        "propertyType": property_type or None,
        "status": buyer_status or None,
        "timeline": timeline or None,
        "page": page,
        "limit": limit,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }
    try:
        return BuyerFilter.model_validate(raw)
    except PydanticValidationError as e:
        raise BusinessRuleError(
            message="Invalid filters",
            code="invalid_filters",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def _parse_updated_at(value: Any) -> datetime:
    if not value:
        raise BusinessRuleError(
            message="updatedAt is required for concurrency control",
            code="missing_updated_at",
        )
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise BusinessRuleError(
            message="updatedAt must be an ISO 8601 timestamp",
            code="invalid_updated_at",
            details={"updatedAt": str(value)},
        ) from e


@router.get(
    "",
    response_model=BuyerListResponse,
    dependencies=[Depends(api_rate_limit)],
)
async def search_buyers(
    filters: BuyerFilter = Depends(get_buyer_filter),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> BuyerListResponse:
    buyers, total_count = await list_buyers(session, filters)
    return BuyerListResponse(
        buyers=[BuyerResponse.model_validate(buyer.as_response()) for buyer in buyers],
        pagination=Pagination(
            page=filters.page,
            limit=filters.limit,
            total_count=total_count,
            total_pages=(total_count + filters.limit - 1) // filters.limit,
        ),
    )


@router.post(
    "",
    response_model=BuyerResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(api_rate_limit)],
)
async def create_buyer_endpoint(
    payload: Dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> BuyerResponse:
    record = ensure_valid_buyer(payload)
    buyer = await create_buyer(session, record, user_id)
    return BuyerResponse.model_validate(buyer.as_response())


@router.get(
    "/{buyer_id}",
    response_model=BuyerDetailResponse,
    dependencies=[Depends(api_rate_limit)],
)
async def get_buyer_endpoint(
    buyer_id: int,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> BuyerDetailResponse:
    buyer = await get_buyer_or_404(session, buyer_id)
    history = await get_buyer_history(session, buyer_id)
    return BuyerDetailResponse(
        buyer=BuyerResponse.model_validate(buyer.as_response()),
        history=[BuyerHistoryResponse.model_validate(entry.as_response()) for entry in history],
    )


@router.put(
    "/{buyer_id}",
    response_model=BuyerResponse,
    dependencies=[Depends(api_rate_limit)],
)
async def update_buyer_endpoint(
    buyer_id: int,
    payload: Dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> BuyerResponse:
    changes = dict(payload)
    last_seen_updated_at = _parse_updated_at(changes.pop("updatedAt", None))
    buyer = await update_buyer(session, buyer_id, changes, user_id, last_seen_updated_at)
    return BuyerResponse.model_validate(buyer.as_response())


@router.delete("/{buyer_id}", dependencies=[Depends(api_rate_limit)])
async def delete_buyer_endpoint(
    buyer_id: int,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, bool]:
    await delete_buyer(session, buyer_id, user_id)
    return {"success": True}
