"""
Business logic services for buyer validation, CSV import/export and storage.
"""
