import logging
import os
import sqlite3

from home_library.config import settings

logger = logging.getLogger(__name__)

# Default database file; callers may pass their own path (tests use tmp_path).
DATABASE_FILE = settings.database_file


def get_db_connection(db_file: str | None = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database, creating its directory if needed."""
    path = db_file or DATABASE_FILE
    if path != ":memory:":
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the books table and its indexes if they do not exist yet."""
    # AUTOINCREMENT keeps ids monotonic: a deleted id is never handed out again.
    conn.execute("""
        CREATE TABLE IF NOT EXISTS books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            author TEXT,
            isbn TEXT,
            location TEXT,
            notes TEXT,
            tags TEXT,
            status TEXT NOT NULL DEFAULT 'available',
            lent_to TEXT,
            lend_date TEXT,
            due_date TEXT,
            cover_url TEXT,
            created_at TEXT,
            updated_at TEXT
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_location ON books(location)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_status ON books(status)")


def initialize_database(db_file: str | None = None) -> None:
    """Create the schema in the given database file."""
    conn = get_db_connection(db_file)
    try:
        with conn:
            create_tables(conn)
        logger.debug("Database initialized at %s", db_file or DATABASE_FILE)
    finally:
        conn.close()
