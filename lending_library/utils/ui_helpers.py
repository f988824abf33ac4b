import os
import json
from typing import Any, Dict, List, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _date(value: Optional[str]) -> str:
    # ISO timestamps are shown as their date part
    return value[:10] if value else "-"


def _book_row(book: Any) -> Dict[str, Any]:
    due = book.due_date.date().isoformat() if book.due_date else None
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "genre": book.genre,
        "status": "Available" if book.is_available else "Borrowed",
        "borrowed_by": book.borrowed_by,
        "due_date": due,
    }


def print_book_list(books: List[Any], empty_message: str = "No books in library.", title: str = "Books") -> None:
    """Print books in the current output mode.
    - plain: '#id Title by Author [Genre] - Available' lines
    - json: array of objects
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print(empty_message)
        return

    rows = [_book_row(b) for b in books]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=f"📚 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Status")
        table.add_column("Due")
        for row in rows:
            status = "[green]Available[/]" if row["status"] == "Available" else "[red]Borrowed[/]"
            table.add_row(str(row["id"]), row["title"], row["author"], row["genre"], status, row["due_date"] or "-")
        _console.print(table)
    else:
        for row in rows:
            line = f"#{row['id']} {row['title']} by {row['author']} [{row['genre']}] - {row['status']}"
            if row["due_date"]:
                line += f" (due {row['due_date']})"
            print(line)


def print_patron_books(available: List[Any], borrowed: List[Any], empty_message: str = "No books in library.") -> None:
    """The shelf plus the patron's own loans; json mode emits a single object."""
    if get_output_mode() == "json":
        payload = {
            "available": [_book_row(b) for b in available],
            "borrowed": [_book_row(b) for b in borrowed],
        }
        print(json.dumps(payload, ensure_ascii=False))
        return

    print_book_list(available, empty_message=empty_message, title="Available Books")
    if borrowed:
        if get_output_mode() != "rich":
            print("My Borrowed Books:")
        print_book_list(borrowed, title="My Borrowed Books")


def print_public_results(books: List[Any]) -> None:
    """Search results for visitors: no borrower or due date is shown."""
    mode = get_output_mode()

    if not books:
        print("No books found. Try a different search term or check back later.")
        return

    rows = []
    for b in books:
        row = _book_row(b)
        row.pop("borrowed_by")
        row.pop("due_date")
        rows.append(row)

    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="🔎 Search Results", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Status")
        for row in rows:
            status = "[green]Available[/]" if row["status"] == "Available" else "[red]Borrowed[/] (register to borrow)"
            table.add_row(str(row["id"]), row["title"], row["author"], row["genre"], status)
        _console.print(table)
    else:
        for row in rows:
            line = f"#{row['id']} {row['title']} by {row['author']} [{row['genre']}] - {row['status']}"
            if row["status"] != "Available":
                line += " (Please register to borrow this book.)"
            print(line)


def _print_history_rows(entries: List[Dict[str, Any]], title_key: str, heading: str) -> None:
    mode = get_output_mode()
    if mode == "rich":
        table = Table(title=heading, header_style="bold cyan")
        table.add_column("Book")
        table.add_column("Borrowed")
        table.add_column("Returned")
        table.add_column("Status")
        for e in entries:
            status = "[green]Returned[/]" if e.get("returnDate") else "[yellow]Not returned[/]"
            table.add_row(e[title_key], _date(e.get("borrowDate")), _date(e.get("returnDate")), status)
        _console.print(table)
    else:
        print(heading)
        for e in entries:
            status = "Returned" if e.get("returnDate") else "Not returned"
            print(f"  {e[title_key]} | borrowed {_date(e.get('borrowDate'))} | returned {_date(e.get('returnDate'))} | {status}")


def print_user_history(entries: List[Dict[str, Any]]) -> None:
    """A patron's own history (already ordered most recent first)."""
    if get_output_mode() == "json":
        print(json.dumps(entries, ensure_ascii=False))
        return
    if not entries:
        print("No borrowing history found")
        return
    _print_history_rows(entries, "title", "Your Borrowing History")


def print_all_histories(histories: Dict[str, List[Dict[str, Any]]]) -> None:
    """Every user's history, in aggregation order."""
    if get_output_mode() == "json":
        print(json.dumps(histories, ensure_ascii=False))
        return
    if not histories:
        print("No borrowing histories found.")
        return
    for username, entries in histories.items():
        _print_history_rows(entries, "bookTitle", username)


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    most = stats.get("most_borrowed_book")
    popular = f"{most['title']} ({most['borrow_count']} borrows)" if most else "No borrows yet"

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Total Books:[/] {stats.get('total_books', 0)}\n"
            f"[bold]Available:[/] {stats.get('available_books', 0)}\n"
            f"[bold]Borrowed:[/] {stats.get('borrowed_books', 0)}\n"
            f"[bold]Most Popular:[/] {popular}"
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {stats.get('total_books', 0)}")
        print(f"Available: {stats.get('available_books', 0)}")
        print(f"Borrowed: {stats.get('borrowed_books', 0)}")
        print(f"Most Popular: {popular}")
