# api/schemas.py
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class SearchRequest(BaseModel):
    title: Optional[str] = Field(None, validation_alias=AliasChoices("title", "bookTitle"))
    author: Optional[str] = None


class BookCreate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None


def clean(value):
    """Strip a text field, mapping blank strings to None."""
    if value is None:
        return None
    value = value.strip()
    return value or None
