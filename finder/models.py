# finder/models.py
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import DecodeError


def _as_utc(value):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _decode(model, kind, doc):
    if not isinstance(doc, dict):
        raise DecodeError(kind, None, f"expected a document, got {type(doc).__name__}")
    doc_id = doc.get("_id")
    if doc_id is None:
        raise DecodeError(kind, None, "missing _id")
    try:
        return model.model_validate({**doc, "id": str(doc_id)})
    except ValidationError as e:
        raise DecodeError(kind, str(doc_id), str(e)) from e


class SearchResult(BaseModel):
    """A single listing found by a source connector."""

    title: str
    price: str
    source: str
    link: str
    condition: Optional[str] = None
    seller: Optional[str] = None


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    display_name: Optional[str] = Field(None, alias="displayName")
    notifications: bool = False

    @classmethod
    def from_document(cls, doc):
        return _decode(cls, "user", doc)


class Book(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = Field(..., min_length=1)
    author: Optional[str] = None
    added_date: Optional[str] = Field(None, alias="addedDate")
    user_id: str = Field(..., alias="userId")
    last_searched: Optional[datetime] = Field(None, alias="lastSearched")

    @field_validator("last_searched")
    @classmethod
    def _last_searched_utc(cls, v):
        return _as_utc(v)

    @classmethod
    def from_document(cls, doc):
        return _decode(cls, "book", doc)

    def query(self):
        """Search string for this book: title, followed by the author if known."""
        if self.author:
            return f"{self.title} {self.author}"
        return self.title

    def searched_since(self, cutoff):
        """True when the last search happened strictly after ``cutoff``."""
        return self.last_searched is not None and self.last_searched > cutoff


class Notification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(..., alias="userId")
    book_title: str = Field(..., alias="bookTitle")
    title: str
    price: str
    source: str
    link: str
    condition: Optional[str] = None
    seller: Optional[str] = None
    date: str
    read: bool = False
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    read_at: Optional[datetime] = Field(None, alias="readAt")

    @field_validator("created_at", "read_at")
    @classmethod
    def _timestamps_utc(cls, v):
        return _as_utc(v)

    @classmethod
    def from_document(cls, doc):
        return _decode(cls, "notification", doc)


def notification_document(user_id, book_title, result, now):
    """
    Build the stored form of one notification for a search result.

    Optional result fields are written as explicit nulls so every stored
    notification has the same shape.
    """
    return {
        "userId": user_id,
        "bookTitle": book_title,
        "title": result.title,
        "price": result.price,
        "source": result.source,
        "link": result.link,
        "condition": result.condition or None,
        "seller": result.seller or None,
        "date": now.date().isoformat(),
        "read": False,
        "createdAt": now,
    }
