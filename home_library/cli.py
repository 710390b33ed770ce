import logging
from datetime import date
from functools import wraps
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from home_library import database
from home_library.catalog import CatalogService
from home_library.config import settings
from home_library.exceptions import CatalogError, MetadataLookupError, ValidationError
from home_library.schemas import parse_tags
from home_library.services.openlibrary import OpenLibraryClient
from home_library.store import BookStore
from home_library.ui_helpers import (
    get_output_mode,
    print_book_detail,
    print_list_result,
    print_stats_result,
    set_output_mode,
)

logger = logging.getLogger(__name__)

console = Console()


class CatalogManager:
    """Holds one CatalogService per database file for the CLI process."""
    _instance: Optional[CatalogService] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> CatalogService:
        current_db = database.DATABASE_FILE
        # A different database file (e.g. --db or a per-test database) gets a fresh service
        if cls._instance is None or current_db != cls._db_file_snapshot:
            lookup = OpenLibraryClient() if settings.enable_metadata_lookup else None
            cls._instance = CatalogService(BookStore(current_db), lookup=lookup)
            cls._db_file_snapshot = current_db
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._db_file_snapshot = None


def handle_errors(func):
    """Report catalog errors as a message and exit code 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except CatalogError as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
    return wrapper


# --- Typer CLI application ---
app = typer.Typer(help=f"{settings.app_name} catalog")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file to use"),
):
    """Global options (output mode, database file)."""
    logging.basicConfig(level=settings.log_level.upper())
    if output:
        set_output_mode(output)
    if db:
        database.DATABASE_FILE = db


@app.command("list")
@handle_errors
def cli_list(
    search: str = typer.Option("", "--search", "-s", help="Match title, author, ISBN or tags"),
    room: str = typer.Option("", "--room", "-r", help="Only books in this room"),
    status: str = typer.Option("", "--status", help="available | lent"),
):
    """List books sorted by title."""
    books = CatalogManager.get_instance().list_books(search=search, room=room, status=status)
    print_list_result(books)


@app.command("show")
@handle_errors
def cli_show(book_id: int):
    """Show the details of one book."""
    book = CatalogManager.get_instance().get_book(book_id)
    if book is None:
        print(f"Book with id {book_id} not found.")
        return
    print_book_detail(book)


@app.command("add")
@handle_errors
def cli_add(
    title: str,
    author: str = typer.Option("", "--author", "-a"),
    isbn: str = typer.Option("", "--isbn"),
    location: str = typer.Option("", "--location", "-l", help="Room or shelf"),
    tags: str = typer.Option("", "--tags", "-t", help="Comma-separated tags"),
    notes: str = typer.Option("", "--notes", "-n"),
    cover_url: Optional[str] = typer.Option(None, "--cover-url"),
):
    """Add a book."""
    book = CatalogManager.get_instance().add_book({
        "title": title, "author": author, "isbn": isbn, "location": location,
        "tags": tags, "notes": notes, "cover_url": cover_url,
    })
    print(f"Successfully added: [{book.id}] {book.title}")


@app.command("edit")
@handle_errors
def cli_edit(
    book_id: int,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    location: Optional[str] = typer.Option(None, "--location", "-l"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n"),
    cover_url: Optional[str] = typer.Option(None, "--cover-url"),
):
    """Edit a book; only the given options are changed."""
    given = {
        "title": title, "author": author, "isbn": isbn, "location": location,
        "tags": tags, "notes": notes, "cover_url": cover_url,
    }
    patch = {k: v for k, v in given.items() if v is not None}
    if not patch:
        print("Nothing to update. Provide at least one option.")
        return
    book = CatalogManager.get_instance().edit_book(book_id, patch)
    print(f"Updated: [{book.id}] {book.title}")


@app.command("lend")
@handle_errors
def cli_lend(
    book_id: int,
    lent_to: str,
    lend_date: Optional[str] = typer.Option(None, "--lend-date", help="YYYY-MM-DD (default: today)"),
    due_date: Optional[str] = typer.Option(None, "--due-date", help="YYYY-MM-DD"),
):
    """Lend a book to someone."""
    if lend_date is None:
        lend_date = date.today().isoformat()
    book =CatalogManager.get_instance().lend_book(book_id, lent_to, lend_date=lend_date, due_date=due_date)
    print(f"Lent: {book.title} to {book.lent_to}")


@app.command("return")
@handle_errors
def cli_return(book_id: int):
    """Mark a lent book as returned."""
    book = CatalogManager.get_instance().return_book(book_id)
    print(f"Returned: {book.title}")


@app.command("delete")
@handle_errors
def cli_delete(book_id: int, yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")):
    """Delete a book."""
    service = CatalogManager.get_instance()
    book = service.get_book(book_id)
    if book is None:
        print(f"Book with id {book_id} not found.")
        return
    if not yes and not typer.confirm(f'Delete "{book.title}"? This can\'t be undone.'):
        print("Cancelled.")
        return
    service.delete_book(book_id)
    print(f"Book with id {book_id} has been deleted.")


@app.command("rooms")
@handle_errors
def cli_rooms():
    """List the rooms books are kept in."""
    rooms = CatalogManager.get_instance().rooms()
    if not rooms:
        print("No rooms recorded.")
        return
    print(f"Rooms ({len(rooms)}):")
    for room in rooms:
        print(f"- {room}")


@app.command("stats")
@handle_errors
def cli_stats():
    """Show library statistics."""
    print_stats_result(CatalogManager.get_instance().get_statistics())


@app.command("export")
@handle_errors
def cli_export(file: Optional[str] = typer.Option(None, "--file", "-f", help="Target JSON file")):
    """Back up the whole library to a JSON file."""
    service = CatalogManager.get_instance()
    filename = file or f"home-library-{date.today().isoformat()}.json"
    data = service.export_json()
    Path(filename).write_text(data, encoding="utf-8")
    print(f"Exported {len(service.export_books())} books to {filename}")


@app.command("import")
@handle_errors
def cli_import(file: str):
    """Restore or merge books from a JSON backup."""
    path = Path(file)
    if not path.exists():
        print(f"File not found: {file}")
        raise typer.Exit(code=1)
    summary = CatalogManager.get_instance().import_json(path.read_text(encoding="utf-8"))
    print(f"Import complete: {summary.added} added, {summary.merged} merged, {summary.failed} failed")
    for error in summary.errors:
        print(f"  - {error}")


@app.command("lookup")
def cli_lookup(
    isbn: str,
    add: bool = typer.Option(False, "--add", help="Add the book found"),
    location: str = typer.Option("", "--location", "-l"),
    tags: str = typer.Option("", "--tags", "-t"),
):
    """Look up an ISBN on Open Library and optionally add the book."""
    service = CatalogManager.get_instance()
    try:
        draft = service.prefill_draft(isbn)
    except ValidationError as e:
        print(f"Invalid ISBN: {e}")
        raise typer.Exit(code=1)
    except MetadataLookupError:
        print("Lookup failed. Check connection or try again.")
        return
    if draft is None:
        print("Not found. Try manual entry.")
        return

    if get_output_mode() == "rich":
        console.print(f"[bold]{escape(draft.title)}[/] - {escape(draft.author)} (ISBN {draft.isbn})")
    else:
        print(f"Title: {draft.title}")
        print(f"Author: {draft.author}")
        print(f"ISBN: {draft.isbn}")
        print(f"Cover: {draft.cover_url or '-'}")

    if add:
        draft = draft.model_copy(update={"location": location.strip(), "tags": parse_tags(tags)})
        try:
            book = service.add_book(draft)
        except CatalogError as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
        print(f"Successfully added: [{book.id}] {book.title}")


if __name__ == "__main__":
    app()
