import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from home_library import database
from home_library.book import Book, JSON_FIELDS
from home_library.exceptions import StorageError

logger = logging.getLogger(__name__)

_COLUMNS = list(JSON_FIELDS)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM books"


class BookStore:
    """Durable CRUD for book records, one transaction per call."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        try:
            database.initialize_database(self.db_file)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Could not open database %s: %s", self.db_file, exc)
            raise StorageError(f"Database not available: {exc}") from exc

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Run the block in a single transaction; commit on success, roll back on error."""
        try:
            conn = database.get_db_connection(self.db_file)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Could not open database %s: %s", self.db_file, exc)
            raise StorageError(f"Database not available: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Store %s failed: %s", action, exc)
            raise StorageError(f"Could not {action}: {exc}") from exc
        finally:
            conn.close()

    # ------------------------- Writes ------------------------- #
    def add(self, book: Book) -> int:
        """Insert a new record and return the id assigned to it. Any id on the book is ignored."""
        row = book.to_row()
        row.pop("id")
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        with self._transaction("add book") as conn:
            cursor = conn.execute(
                f"INSERT INTO books ({', '.join(columns)}) VALUES ({placeholders})",
                [row[c] for c in columns],
            )
            book_id = cursor.lastrowid
        logger.debug("Added book %s", book_id)
        return book_id

    def put(self, book: Book) -> None:
        """Insert or replace the whole record with ``book.id``."""
        if book.id is None:
            raise ValueError("put() requires a book with an id")
        row = book.to_row()
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._transaction("save book") as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO books ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                [row[c] for c in _COLUMNS],
            )
        logger.debug("Saved book %s", book.id)

    def delete(self, book_id: int) -> None:
        """Remove the record; deleting a missing id is not an error."""
        with self._transaction("delete book") as conn:
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))

    def clear(self) -> None:
        """Remove every record."""
        with self._transaction("clear books") as conn:
            conn.execute("DELETE FROM books")

    # ------------------------- Reads ------------------------- #
    def get_all(self) -> List[Book]:
        """Return every record in storage order."""
        with self._transaction("read books") as conn:
            rows = conn.execute(f"{_SELECT} ORDER BY id").fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def get(self, book_id: int) -> Optional[Book]:
        with self._transaction("read book") as conn:
            row = conn.execute(f"{_SELECT} WHERE id = ?", (book_id,)).fetchone()
        return Book.from_dict(dict(row)) if row else None
