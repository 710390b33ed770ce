import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from home_library.config import settings

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"
OUTPUT_MODES = {"plain", "json", "rich"}

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, settings.output_mode).lower()


def _status_label(book) -> str:
    if book.status == "lent":
        return f"Lent to {book.lent_to or 'Unknown'}"
    return "Available"


def print_list_result(books: List[Any]) -> None:
    """Print books according to the output mode.
    - plain: '[id] Title by Author - status' lines, or 'No books in library.'
    - json: JSON array in export form
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"📚 {settings.app_name}", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Room", style="green")
        table.add_column("Status", style="yellow")
        table.add_column("Tags", style="dim")
        for b in books:
            tags = ", ".join(f"#{t}" for t in b.tags[:3])
            if len(b.tags) > 3:
                tags += f" +{len(b.tags) - 3} more"
            table.add_row(str(b.id), b.title or "(Untitled)", b.author, b.location, _status_label(b), tags)
        _console.print(table)
    else:
        for b in books:
            line = f"[{b.id}] {b.title or '(Untitled)'}"
            if b.author:
                line += f" by {b.author}"
            line += f" - {_status_label(b)}"
            if b.location:
                line += f" ({b.location})"
            print(line)


def print_book_detail(book) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
        return

    lines = [
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"ISBN: {book.isbn}",
        f"Room: {book.location}",
        f"Tags: {', '.join(book.tags)}",
        f"Status: {_status_label(book)}",
    ]
    if book.is_lent:
        lines.append(f"Lent on: {book.lend_date or '-'}")
        lines.append(f"Due: {book.due_date or '-'}")
    if book.notes:
        lines.append(f"Notes: {book.notes}")

    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title=f"📖 Book {book.id}", border_style="blue"))
    else:
        print(f"Book {book.id}")
        for line in lines:
            print(line)


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Total Books:[/] {stats.get('total_books', 0)}\n"
            f"[bold]Available:[/] {stats.get('available', 0)}\n"
            f"[bold]Lent:[/] {stats.get('lent', 0)}\n"
            f"[bold]Rooms:[/] {stats.get('rooms', 0)}"
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {stats.get('total_books', 0)}")
        print(f"Available: {stats.get('available', 0)}")
        print(f"Lent: {stats.get('lent', 0)}")
        print(f"Rooms: {stats.get('rooms', 0)}")
