from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm.db.base import Base, utcnow
from crm.schemas.buyer import BuyerRecord
from crm.services.normalization import join_tags, parse_tags


class Buyer(Base):
    __tablename__ = "buyers"

    full_name: Mapped[str] = mapped_column(String(80), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[str] = mapped_column(String(15), nullable=False)
    city: Mapped[str] = mapped_column(String(40), nullable=False)
    property_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Integer count or "Studio".
    bhk: Mapped[Optional[str]] = mapped_column(String(10))
    purpose: Mapped[str] = mapped_column(String(10), nullable=False)
    budget_min: Mapped[Optional[int]] = mapped_column(BigInteger)
    budget_max: Mapped[Optional[int]] = mapped_column(BigInteger)
    timeline: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="New")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[str]] = mapped_column(Text)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    history: Mapped[List["BuyerHistory"]] = relationship(
        back_populates="buyer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_buyers_owner_id", "owner_id"),
        Index("idx_buyers_status", "status"),
        Index("idx_buyers_city_property_type", "city", "property_type"),
        CheckConstraint("budget_min IS NULL OR budget_min > 0", name="check_positive_budget_min"),
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_max >= budget_min",
            name="check_budget_range",
        ),
    )

    @staticmethod
    def columns_from_record(record: BuyerRecord) -> Dict[str, Any]:
        """Column values for a validated record."""
        return {
            "full_name": record.full_name,
            "email": record.email,
            "phone": record.phone,
            "city": record.city.value,
            "property_type": record.property_type.value,
            "bhk": None if record.bhk is None else str(record.bhk),
            "purpose": record.purpose.value,
            "budget_min": record.budget_min,
            "budget_max": record.budget_max,
            "timeline": record.timeline.value,
            "source": record.source.value,
            "status": record.status.value,
            "notes": record.notes,
            "tags": join_tags(record.tags) or None,
        }

    @property
    def bhk_value(self) -> Optional[Any]:
        if self.bhk is None or not self.bhk.isdigit():
            return self.bhk
        return int(self.bhk)

    def as_row(self) -> Dict[str, Any]:
        """camelCase mapping in the shape the validator and CSV export read."""
        return {
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "propertyType": self.property_type,
            "bhk": self.bhk_value,
            "purpose": self.purpose,
            "budgetMin": self.budget_min,
            "budgetMax": self.budget_max,
            "timeline": self.timeline,
            "source": self.source,
            "status": self.status,
            "notes": self.notes,
            "tags": parse_tags(self.tags),
        }

    def as_response(self) -> Dict[str, Any]:
        return {
            **self.as_row(),
            "id": self.id,
            "ownerId": self.owner_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class BuyerHistory(Base):
    __tablename__ = "buyer_history"

    buyer_id: Mapped[int] = mapped_column(
        ForeignKey("buyers.id", ondelete="CASCADE"),
        nullable=False,
    )
    field: Mapped[str] = mapped_column(String(40), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    buyer: Mapped[Buyer] = relationship(back_populates="history")

    __table_args__ = (
        Index("idx_buyer_history_buyer_changed", "buyer_id", "changed_at"),
    )

    def as_response(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "buyerId": self.buyer_id,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "changedBy": self.changed_by,
            "changedAt": self.changed_at,
        }
