import json
import logging
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from home_library.book import Book, LOAN_FIELDS, STATUS_AVAILABLE, STATUS_LENT, STATUSES
from home_library.exceptions import (
    BookNotFoundError,
    ImportFormatError,
    StorageError,
    ValidationError,
)
from home_library.schemas import BookDraft, BookPatch, coerce_timestamp, format_timestamp
from home_library.services.openlibrary import OpenLibraryClient, sanitize_isbn
from home_library.store import BookStore

logger = logging.getLogger(__name__)

_ARTICLES = ("the ", "a ", "an ")


def normalize_title(title: Optional[str]) -> str:
    """Trim and drop one leading English article ("the", "a", "an")."""
    s = (title or "").strip()
    low = s.lower()
    for article in _ARTICLES:
        if low.startswith(article):
            return s[len(article):]
    return s


def _fold(text: str) -> str:
    # Case- and accent-insensitive comparison form
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def title_sort_key(book: Book):
    """Sort key: normalized title, empty titles last."""
    normalized = normalize_title(book.title)
    return (normalized == "", _fold(normalized))


def matches_filters(book: Book, search: str = "", room: str = "", status: str = "") -> bool:
    if room and (book.location or "") != room:
        return False
    if status and (book.status or STATUS_AVAILABLE) != status:
        return False
    if not search:
        return True
    q = search.lower()
    fields = [book.title, book.author, book.isbn, ", ".join(book.tags or [])]
    return any(q in (f or "").lower() for f in fields)


@dataclass
class ImportSummary:
    added: int = 0
    merged: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"added": self.added, "merged": self.merged, "failed": self.failed, "errors": list(self.errors)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogService:
    """Domain operations over the book store.

    Holds a read-through cache of the whole collection that is dropped after
    every mutating call.
    """

    def __init__(self, store: BookStore, lookup: Optional[OpenLibraryClient] = None,
                 clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self.lookup = lookup
        self._clock = clock
        self._cache: Optional[List[Book]] = None

    # ------------------------- Cache ------------------------- #
    def _all_books(self) -> List[Book]:
        if self._cache is None:
            self._cache = self.store.get_all()
        return self._cache

    def _invalidate(self) -> None:
        self._cache = None

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _require(self, book_id: int) -> Book:
        book = self.store.get(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    # ------------------------- Queries ------------------------- #
    def list_books(self, search: str = "", room: str = "", status: str = "") -> List[Book]:
        """Filter the collection and sort it by normalized title."""
        search = (search or "").strip()
        books = [b.copy() for b in self._all_books() if matches_filters(b, search, room or "", status or "")]
        books.sort(key=title_sort_key)
        return books

    def get_book(self, book_id: int) -> Optional[Book]:
        for book in self._all_books():
            if book.id == book_id:
                return book.copy()
        return None

    def rooms(self) -> List[str]:
        return sorted({(b.location or "").strip() for b in self._all_books()} - {""})

    def get_statistics(self) -> Dict[str, Any]:
        books = self._all_books()
        lent = sum(1 for b in books if b.status == STATUS_LENT)
        return {
            "total_books": len(books),
            "available": len(books) - lent,
            "lent": lent,
            "rooms": len(self.rooms()),
        }

    # ------------------------- Mutations ------------------------- #
    def add_book(self, draft) -> Book:
        """Create a book from a draft (BookDraft or dict). Status always starts as available."""
        draft = self._parse(BookDraft, draft)
        if not draft.title:
            raise ValidationError("Title is required.")
        book = draft.to_book()
        now = self._now()
        book.status = STATUS_AVAILABLE
        book.created_at = now
        book.updated_at = now
        try:
            book.id = self.store.add(book)
        finally:
            self._invalidate()
        logger.info("Added book %s: %s", book.id, book.title)
        return book

    def edit_book(self, book_id: int, patch) -> Book:
        """Overlay the supplied patch fields onto the record; id and created_at are kept."""
        patch = self._parse(BookPatch, patch)
        existing = self.store.get(book_id)
        if existing is None:
            existing = Book(title="", id=book_id, created_at=self._now())
        updated = patch.apply_to(existing)
        updated.id = book_id
        updated.created_at = existing.created_at
        updated.updated_at = self._now()
        self._check_invariants(updated)
        try:
            self.store.put(updated)
        finally:
            self._invalidate()
        return updated

    def lend_book(self, book_id: int, lent_to: str, lend_date=None, due_date=None) -> Book:
        lent_to = (lent_to or "").strip()
        if not lent_to:
            raise ValidationError("Borrower name is required to lend a book.")
        try:
            lend_date = coerce_timestamp(lend_date)
            due_date = coerce_timestamp(due_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        book = self._require(book_id)
        if book.is_lent:
            raise ValidationError(f"Book {book_id} is already lent to {book.lent_to}.")
        book.status = STATUS_LENT
        book.lent_to = lent_to
        book.lend_date = lend_date
        book.due_date = due_date
        book.updated_at = self._now()
        try:
            self.store.put(book)
        finally:
            self._invalidate()
        logger.info("Lent book %s to %s", book_id, lent_to)
        return book

    def return_book(self, book_id: int) -> Book:
        book = self._require(book_id)
        book.status = STATUS_AVAILABLE
        for name in LOAN_FIELDS:
            setattr(book, name, None)
        book.updated_at = self._now()
        try:
            self.store.put(book)
        finally:
            self._invalidate()
        logger.info("Returned book %s", book_id)
        return book

    def delete_book(self, book_id: int) -> None:
        try:
            self.store.delete(book_id)
        finally:
            self._invalidate()

    # ------------------------- Import / Export ------------------------- #
    def export_books(self) -> List[Dict[str, Any]]:
        return [b.to_dict() for b in self._all_books()]

    def export_json(self) -> str:
        return json.dumps(self.export_books(), indent=2, ensure_ascii=False)

    def import_json(self, text: str) -> ImportSummary:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Invalid JSON: {exc}") from exc
        return self.import_books(payload)

    def import_books(self, payload) -> ImportSummary:
        """Merge an exported array into the store.

        Elements whose id matches an existing record are overlaid onto it;
        everything else is inserted as a new record with a fresh id. Each
        element is committed on its own, so a failure part way through leaves
        the earlier elements in place.
        """
        if not isinstance(payload, list):
            raise ImportFormatError("Import data must be a JSON array of books.")

        summary = ImportSummary()
        try:
            by_id = {b.id: b for b in self.store.get_all()}
            for index, raw in enumerate(payload):
                try:
                    merged = self._import_one(raw, by_id)
                except (ValidationError, StorageError) as exc:
                    summary.failed += 1
                    summary.errors.append(f"item {index}: {exc}")
                    logger.warning("Import of item %d failed: %s", index, exc)
                    continue
                if merged:
                    summary.merged += 1
                else:
                    summary.added += 1
        finally:
            self._invalidate()
        logger.info("Import finished: %d added, %d merged, %d failed",
                    summary.added, summary.merged, summary.failed)
        return summary

    def _import_one(self, raw, by_id: Dict[int, Book]) -> bool:
        """Import one element; return True when it was merged into an existing record."""
        if not isinstance(raw, dict):
            raise ValidationError("Item is not an object.")
        rest = dict(raw)
        book_id = _as_id(rest.pop("id", None))
        patch = self._parse(BookPatch, rest)
        now = self._now()

        if book_id is not None and book_id in by_id:
            existing = by_id[book_id]
            updated = patch.apply_to(existing)
            updated.id = book_id
            updated.created_at = existing.created_at
            updated.updated_at = now
            self._check_invariants(updated)
            self.store.put(updated)
            by_id[book_id] = updated
            return True

        book = patch.apply_to(Book(title=""))
        book.id = None
        book.created_at = now
        book.updated_at = now
        self._check_invariants(book)
        book.id = self.store.add(book)
        return False

    # ------------------------- Lookup ------------------------- #
    def prefill_draft(self, raw_isbn: str) -> Optional[BookDraft]:
        """Build a draft from Open Library metadata; None when the ISBN is unknown."""
        isbn = sanitize_isbn(raw_isbn)
        if not isbn:
            raise ValidationError("ISBN must have 10 or 13 digits.")
        if self.lookup is None:
            return None
        meta = self.lookup.lookup_by_isbn(isbn)
        if meta is None:
            return None
        return BookDraft(
            title=meta.title,
            author=", ".join(meta.authors),
            isbn=meta.isbn or isbn,
            cover_url=meta.cover_url,
        )

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _parse(model, data):
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data or {})
        except PydanticValidationError as exc:
            raise ValidationError(_describe(exc)) from exc

    @staticmethod
    def _check_invariants(book: Book) -> None:
        if not (book.title or "").strip():
            raise ValidationError("Title is required.")
        if book.status not in STATUSES:
            raise ValidationError(f"Unknown status: {book.status!r}")
        if book.status == STATUS_LENT and not (book.lent_to or "").strip():
            raise ValidationError("A lent book needs a borrower name.")
        if book.status == STATUS_AVAILABLE:
            for name in LOAN_FIELDS:
                setattr(book, name, None)


def _as_id(value) -> Optional[int]:
    """Return ``value`` as a record id, accepting whole-number floats such as ``1.0``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts) or str(exc)
