from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crm.schemas.buyer import BuyerRecord


class RowError(BaseModel):
    """One validation failure tied to a CSV data row."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    row: int
    field: Optional[str] = None
    message: str
    raw_data: str = Field(alias="rawData")


class ImportOutcome(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid_rows: List[BuyerRecord] = Field(default_factory=list, alias="validRows")
    errors: List[RowError] = Field(default_factory=list)
    total_data_rows: int = Field(default=0, alias="totalDataRows")
    # Source row of each entry in valid_rows, same order.
    valid_row_numbers: List[int] = Field(default_factory=list, exclude=True)


class ImportRecordError(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    row: int
    message: str
    data: Any


class ImportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    total_rows: int = Field(alias="totalRows")
    valid_rows: int = Field(alias="validRows")
    imported_count: int = Field(alias="importedCount")
    validation_errors: List[RowError] = Field(alias="validationErrors")
    import_errors: List[ImportRecordError] = Field(alias="importErrors")
