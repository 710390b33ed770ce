"""Home Library - personal book catalog

This package contains:
- Book model and draft/patch schemas (book.py, schemas.py)
- SQLite database layer and book store (database.py, store.py)
- Catalog service with filtering, lending and JSON import/export (catalog.py)
- Open Library metadata lookup (services/openlibrary.py)
- CLI interface (cli.py)
"""

__version__ = "1.0.0"
