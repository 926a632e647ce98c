"""
API route handlers organized by domain.
"""
