"""
Pydantic input models for the catalog.

``BookDraft`` is what a caller supplies to create a book: everything a
``Book`` has except the identity and the timestamps. ``BookPatch`` is a
partial book used by edit and import. Every field of a patch is optional,
and the set of fields the caller actually supplied (``model_fields_set``)
decides what is overlaid onto the existing record:

* a key that is absent keeps the existing value;
* a key that is present with ``null`` clears the value.

Both models accept the camelCase keys of the JSON export format as well
as the snake_case attribute names.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from home_library.book import Book, STATUS_AVAILABLE

_TEXT_FIELDS = ("author", "isbn", "location", "notes")


def parse_tags(raw) -> List[str]:
    """Split a comma-separated string (or clean a list) into tags.

    Entries are trimmed and empty ones dropped; duplicates are kept.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        raise ValueError("tags must be a list or a comma-separated string")
    return [str(t).strip() for t in items if str(t).strip()]


def format_timestamp(moment: datetime) -> str:
    """Format as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def coerce_timestamp(value) -> Optional[str]:
    """Turn a date, datetime or ISO string into a stored timestamp. Empty values give ``None``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return format_timestamp(datetime(value.year, value.month, value.day, tzinfo=timezone.utc))
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Invalid date: {value!r}") from None
        return format_timestamp(parsed)
    raise ValueError(f"Invalid date: {value!r}")


class BookDraft(BaseModel):
    """A book to be created; the store assigns id and the service stamps times."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    title: str = ""
    author: str = ""
    isbn: str = ""
    location: str = ""
    notes: str = ""
    tags: List[str] = Field(default_factory=list)
    cover_url: Optional[str] = Field(default=None, alias="coverUrl")

    @field_validator("title", "author", "isbn", "location", "notes", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return "" if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v):
        return parse_tags(v)

    @field_validator("cover_url")
    @classmethod
    def _blank_cover(cls, v):
        return v or None

    def to_book(self) -> Book:
        return Book(
            title=self.title,
            author=self.author,
            isbn=self.isbn,
            location=self.location,
            notes=self.notes,
            tags=list(self.tags),
            cover_url=self.cover_url,
        )


class BookPatch(BaseModel):
    """A partial book overlaid onto an existing record; supplied fields win."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    status: Optional[Literal["available", "lent"]] = None
    lent_to: Optional[str] = Field(default=None, alias="lentTo")
    lend_date: Optional[str] = Field(default=None, alias="lendDate")
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    cover_url: Optional[str] = Field(default=None, alias="coverUrl")

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, v):
        return None if v is None else parse_tags(v)

    @field_validator("status", mode="before")
    @classmethod
    def _blank_status(cls, v):
        return v or None

    @field_validator("lend_date", "due_date", mode="before")
    @classmethod
    def _timestamps(cls, v):
        return coerce_timestamp(v)

    def supplied(self) -> dict:
        """Return only the fields the caller supplied, by attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def apply_to(self, book: Book) -> Book:
        """Return a copy of ``book`` with the supplied fields overlaid."""
        updated = book.copy()
        for name, value in self.supplied().items():
            if name in _TEXT_FIELDS and value is None:
                value = ""
            elif name == "title" and value is None:
                value = ""
            elif name == "tags" and value is None:
                value = []
            elif name == "status" and value is None:
                value = STATUS_AVAILABLE
            elif name == "cover_url" and value == "":
                value = None
            setattr(updated, name, value)
        return updated
