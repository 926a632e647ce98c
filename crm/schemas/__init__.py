"""
Pydantic schemas for request/response validation and serialization.
"""

from crm.schemas.buyer import BuyerFilter, BuyerRecord, BuyerResponse
from crm.schemas.csv_import import ImportOutcome, ImportResponse, RowError

__all__ = [
    "BuyerFilter",
    "BuyerRecord",
    "BuyerResponse",
    "ImportOutcome",
    "ImportResponse",
    "RowError",
]
