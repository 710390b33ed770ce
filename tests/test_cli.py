import json
from datetime import date
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from home_library.catalog import CatalogService
from home_library.cli import CatalogManager, app
from home_library.config import settings
from home_library.exceptions import MetadataLookupError
from home_library.schemas import BookDraft

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(cli_db):
    yield


def _add(*args):
    return runner.invoke(app, ["add", *args])


def test_list_no_books():
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_and_list():
    result = _add("The Hobbit", "--author", "J.R.R. Tolkien", "--location", "Study", "--tags", "fantasy, classic")
    assert result.exit_code == 0
    assert "Successfully added: [1] The Hobbit" in result.stdout

    result = runner.invoke(app, ["list"])
    assert "[1] The Hobbit by J.R.R. Tolkien - Available (Study)" in result.stdout


def test_add_without_title_fails():
    result = _add("   ")
    assert result.exit_code == 1
    assert "Error: Title is required." in result.stdout


def test_list_filters_and_sorting():
    _add("The Hobbit")
    _add("Dune", "--location", "Study")
    _add("A Wizard of Earthsea", "--location", "Study")

    result = runner.invoke(app, ["list"])
    lines = [line for line in result.stdout.splitlines() if line.startswith("[")]
    assert [line.split("] ")[1].split(" - ")[0] for line in lines] == ["Dune", "The Hobbit", "A Wizard of Earthsea"]

    result = runner.invoke(app, ["list", "--search", "wizard"])
    assert "Earthsea" in result.stdout
    assert "Dune" not in result.stdout

    result = runner.invoke(app, ["list", "--room", "Study"])
    assert "Hobbit" not in result.stdout


def test_json_output_mode():
    _add("Dune", "--tags", "sci-fi")
    result = runner.invoke(app, ["-o", "json", "list"])
    assert result.exit_code == 0
    data = json.loads(result.stdout.strip().splitlines()[-1])
    assert data[0]["title"] == "Dune"
    assert data[0]["tags"] == ["sci-fi"]


def test_lend_and_return():
    _add("Dune")
    result = runner.invoke(app, ["lend", "1", "Alice", "--due-date", "2024-06-01"])
    assert result.exit_code == 0
    assert "Lent: Dune to Alice" in result.stdout

    result = runner.invoke(app, ["list", "--status", "lent"])
    assert "Lent to Alice" in result.stdout

    result = runner.invoke(app, ["return", "1"])
    assert result.exit_code == 0
    assert "Returned: Dune" in result.stdout
    assert "Available" in runner.invoke(app, ["list"]).stdout


def test_lend_date_defaults_to_today(monkeypatch):
    class FixedDate(date):
        @classmethod
        def today(cls):
            return cls(2030, 1, 2)

    _add("Dune")
    monkeypatch.setattr("home_library.cli.date", FixedDate)
    result = runner.invoke(app, ["lend", "1", "Alice"])
    assert result.exit_code == 0
    assert "Lent on: 2030-01-02T00:00:00.000Z" in runner.invoke(app, ["show", "1"]).stdout


def test_help_uses_app_name():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert f"{settings.app_name} catalog" in result.stdout


def test_lend_unknown_book():
    result = runner.invoke(app, ["lend", "42", "Alice"])
    assert result.exit_code == 1
    assert "Book with id 42 not found." in result.stdout


def test_edit_changes_only_given_fields():
    _add("Old Title", "--author", "Kept Author")
    result = runner.invoke(app, ["edit", "1", "--title", "New Title"])
    assert result.exit_code == 0
    shown = runner.invoke(app, ["show", "1"]).stdout
    assert "Title: New Title" in shown
    assert "Author: Kept Author" in shown


def test_edit_without_options():
    _add("Untouched")
    result = runner.invoke(app, ["edit", "1"])
    assert "Nothing to update." in result.stdout


def test_delete_with_confirmation():
    _add("To Be Removed")
    result = runner.invoke(app, ["delete", "1"], input="n\n")
    assert "Cancelled." in result.stdout
    result = runner.invoke(app, ["delete", "1"], input="y\n")
    assert "Book with id 1 has been deleted." in result.stdout
    assert "No books in library." in runner.invoke(app, ["list"]).stdout


def test_delete_not_found():
    result = runner.invoke(app, ["delete", "9", "--yes"])
    assert "Book with id 9 not found." in result.stdout


def test_export_and_import_round_trip(tmp_path):
    _add("Dune", "--location", "Study")
    backup = tmp_path / "backup.json"
    result = runner.invoke(app, ["export", "--file", str(backup)])
    assert result.exit_code == 0
    assert f"Exported 1 books to {backup}" in result.stdout
    assert json.loads(backup.read_text(encoding="utf-8"))[0]["title"] == "Dune"

    result = runner.invoke(app, ["import", str(backup)])
    assert result.exit_code == 0
    assert "Import complete: 0 added, 1 merged, 0 failed" in result.stdout


def test_import_rejects_non_array(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"title": "Dune"}', encoding="utf-8")
    result = runner.invoke(app, ["import", str(bad)])
    assert result.exit_code == 1
    assert "must be a JSON array" in result.stdout


def test_rooms_and_stats():
    _add("Dune", "--location", "Study")
    _add("Emma", "--location", "Bedroom")
    runner.invoke(app, ["lend", "2", "Bob"])

    rooms = runner.invoke(app, ["rooms"]).stdout
    assert "Rooms (2):" in rooms
    assert rooms.index("- Bedroom") < rooms.index("- Study")

    stats = runner.invoke(app, ["stats"]).stdout
    assert "Total Books: 2" in stats
    assert "Lent: 1" in stats


def test_lookup_and_add(monkeypatch):
    draft = BookDraft(title="Dune", author="Frank Herbert", isbn="9780441172719")
    prefill = MagicMock(return_value=draft)
    monkeypatch.setattr(CatalogService, "prefill_draft", prefill)

    result = runner.invoke(app, ["lookup", "978-0-441-17271-9", "--add", "--location", "Study"])
    assert result.exit_code == 0
    assert "Title: Dune" in result.stdout
    assert "Successfully added: [1] Dune" in result.stdout
    prefill.assert_called_once_with("978-0-441-17271-9")
    assert CatalogManager.get_instance().list_books()[0].location == "Study"


def test_lookup_not_found(monkeypatch):
    monkeypatch.setattr(CatalogService, "prefill_draft", MagicMock(return_value=None))
    result = runner.invoke(app, ["lookup", "0306406152"])
    assert result.exit_code == 0
    assert "Not found. Try manual entry." in result.stdout


def test_lookup_unreachable(monkeypatch):
    monkeypatch.setattr(CatalogService, "prefill_draft", MagicMock(side_effect=MetadataLookupError("offline")))
    result = runner.invoke(app, ["lookup", "0306406152"])
    assert result.exit_code == 0
    assert "Lookup failed." in result.stdout


def test_lookup_invalid_isbn():
    result = runner.invoke(app, ["lookup", "123"])
    assert result.exit_code == 1
    assert "Invalid ISBN" in result.stdout
