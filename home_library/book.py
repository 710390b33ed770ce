from __future__ import annotations

import json

STATUS_AVAILABLE = "available"
STATUS_LENT = "lent"
STATUSES = (STATUS_AVAILABLE, STATUS_LENT)

# Attribute name -> JSON key, in export order
JSON_FIELDS = {
    "id": "id",
    "title": "title",
    "author": "author",
    "isbn": "isbn",
    "location": "location",
    "notes": "notes",
    "tags": "tags",
    "status": "status",
    "lent_to": "lentTo",
    "lend_date": "lendDate",
    "due_date": "dueDate",
    "cover_url": "coverUrl",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

LOAN_FIELDS = ("lent_to", "lend_date", "due_date")


class Book:
    """A single physical item in the home library."""

    def __init__(self, title: str, author: str = "", isbn: str = "", location: str = "",
                 notes: str = "", tags: list | None = None, status: str | None = None,
                 lent_to: str | None = None, lend_date: str | None = None, due_date: str | None = None,
                 cover_url: str | None = None, created_at: str | None = None,
                 updated_at: str | None = None, id: int | None = None) -> None:
        self.id = id
        self.title = (title or "").strip()
        self.author = author or ""
        self.isbn = isbn or ""
        self.location = location or ""
        self.notes = notes or ""
        self.tags = list(tags or [])
        self.status = status or STATUS_AVAILABLE
        self.lent_to = lent_to
        self.lend_date = lend_date
        self.due_date = due_date
        self.cover_url = cover_url
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author or 'Unknown'} (id: {self.id})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r}, status={self.status!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @property
    def is_lent(self) -> bool:
        return self.status == STATUS_LENT

    def copy(self) -> "Book":
        return Book(**{attr: getattr(self, attr) for attr in JSON_FIELDS})

    def to_dict(self) -> dict:
        """Return the export form, camelCase keys in schema order."""
        data = {key: getattr(self, attr) for attr, key in JSON_FIELDS.items()}
        data["tags"] = list(self.tags)
        return data

    def to_row(self) -> dict:
        """Return the column values used by the store."""
        row = {attr: getattr(self, attr) for attr in JSON_FIELDS}
        row["tags"] = json.dumps(self.tags, ensure_ascii=False)
        return row

    @staticmethod
    def from_dict(data: dict) -> "Book":
        """Build a book from its export form or from a database row.

        camelCase export keys and snake_case column names are both accepted.
        """
        values = {}
        for attr, key in JSON_FIELDS.items():
            if key in data:
                values[attr] = data[key]
            elif attr in data:
                values[attr] = data[attr]

        # SQLite stores tags as a JSON array string
        tags = values.get("tags")
        if isinstance(tags, str):
            try:
                tags = json.loads(tags)
            except json.JSONDecodeError:
                tags = [tags] if tags else []
        values["tags"] = tags or []

        return Book(title=values.pop("title", "") or "", **values)
