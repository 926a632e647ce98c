from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from crm.schemas.enums import BuyerStatus, City, LeadSource, PropertyType, Purpose, Timeline

Bhk = Union[int, str]


class BuyerRecord(BaseModel):
    """A buyer lead that passed every validation rule."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    full_name: str = Field(alias="fullName", min_length=2, max_length=80)
    email: Optional[str] = None
    phone: str
    city: City
    property_type: PropertyType = Field(alias="propertyType")
    bhk: Optional[Bhk] = None
    purpose: Purpose
    budget_min: Optional[int] = Field(default=None, alias="budgetMin", gt=0)
    budget_max: Optional[int] = Field(default=None, alias="budgetMax", gt=0)
    timeline: Timeline
    source: LeadSource
    status: BuyerStatus = BuyerStatus.NEW
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: List[str] = Field(default_factory=list)

    def as_row(self) -> Dict[str, Any]:
        """Plain camelCase mapping with enum members reduced to their values."""
        return self.model_dump(mode="json", by_alias=True)


class BuyerResponse(BuyerRecord):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    owner_id: str = Field(alias="ownerId")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class BuyerHistoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    buyer_id: int = Field(alias="buyerId")
    field: str
    old_value: Optional[str] = Field(default=None, alias="oldValue")
    new_value: Optional[str] = Field(default=None, alias="newValue")
    changed_by: str = Field(alias="changedBy")
    changed_at: datetime = Field(alias="changedAt")


class BuyerDetailResponse(BaseModel):
    buyer: BuyerResponse
    history: List[BuyerHistoryResponse]


class BuyerFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    search: Optional[str] = None
    city: Optional[City] = None
    property_type: Optional[PropertyType] = Field(default=None, alias="propertyType")
    status: Optional[BuyerStatus] = None
    timeline: Optional[Timeline] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=50)
    sort_by: str = Field(
        default="updatedAt",
        alias="sortBy",
        pattern="^(fullName|phone|city|propertyType|status|updatedAt)$",
    )
    sort_order: str = Field(default="desc", alias="sortOrder", pattern="^(asc|desc)$")


class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int = Field(alias="totalCount")
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class BuyerListResponse(BaseModel):
    buyers: List[BuyerResponse]
    pagination: Pagination
