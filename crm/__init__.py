"""Buyer lead CRM: CSV import/export and validation service."""

__version__ = "1.0.0"
