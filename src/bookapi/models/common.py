"""
bookapi/models/common.py: Base types of the account domain.
"""

from pydantic import BaseModel


class BookApiBase(BaseModel):
    """Base Pydantic model for BookAPI schemas."""

    model_config = {"str_strip_whitespace": True}
