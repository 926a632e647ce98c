"""Closed value domains shared by CSV import, JSON payloads and filters."""
from __future__ import annotations

from enum import Enum
from typing import List


class Choice(str, Enum):
    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class City(Choice):
    MUMBAI = "Mumbai"
    DELHI = "Delhi"
    BANGALORE = "Bangalore"
    CHENNAI = "Chennai"
    HYDERABAD = "Hyderabad"
    PUNE = "Pune"
    KOLKATA = "Kolkata"
    AHMEDABAD = "Ahmedabad"
    CHANDIGARH = "Chandigarh"
    MOHALI = "Mohali"
    ZIRAKPUR = "Zirakpur"
    PANCHKULA = "Panchkula"
    OTHER = "Other"


class PropertyType(Choice):
    APARTMENT = "Apartment"
    VILLA = "Villa"
    PLOT = "Plot"
    OFFICE = "Office"
    RETAIL = "Retail"


class Purpose(Choice):
    BUY = "Buy"
    RENT = "Rent"


class Timeline(Choice):
    ZERO_TO_THREE_MONTHS = "0-3m"
    THREE_TO_SIX_MONTHS = "3-6m"
    MORE_THAN_SIX_MONTHS = ">6m"
    EXPLORING = "Exploring"


class LeadSource(Choice):
    WEBSITE = "Website"
    REFERRAL = "Referral"
    WALK_IN = "Walk-in"
    CALL = "Call"
    OTHER = "Other"


class BuyerStatus(Choice):
    NEW = "New"
    CONTACTED = "Contacted"
    QUALIFIED = "Qualified"
    PROPOSAL_SENT = "Proposal Sent"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


# Property types that describe a residence and therefore carry a BHK.
RESIDENTIAL_PROPERTY_TYPES = frozenset({PropertyType.APARTMENT, PropertyType.VILLA})

BHK_STUDIO = "Studio"
BHK_MIN = 1
BHK_MAX = 10
