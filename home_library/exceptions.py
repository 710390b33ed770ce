"""Errors raised by the catalog, the store and the metadata lookup."""


class CatalogError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(CatalogError, ValueError):
    """A required field is missing or a value is not acceptable."""


class StorageError(CatalogError):
    """The database is unavailable or a transaction did not commit."""


class ImportFormatError(CatalogError, ValueError):
    """An import payload is not a JSON array."""


class BookNotFoundError(CatalogError, KeyError):
    """No book exists with the requested id."""

    def __init__(self, book_id: int) -> None:
        super().__init__(book_id)
        self.book_id = book_id

    def __str__(self) -> str:
        return f"Book with id {self.book_id} not found."


class MetadataLookupError(CatalogError, LookupError):
    """The metadata service could not be reached."""
