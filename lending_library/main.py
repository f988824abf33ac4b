import logging
from typing import Optional

import typer

from lending_library import auth, database
from lending_library.book import ROLE_LIBRARIAN, ROLE_USER
from lending_library.config import settings
from lending_library.database import KeyValueStore
from lending_library.library import Library, LibraryError
from lending_library.utils.ui_helpers import (
    set_output_mode,
    print_book_list,
    print_patron_books,
    print_public_results,
    print_user_history,
    print_all_histories,
    print_stats_result,
)
from lending_library.utils.validators import BookValidator, TextValidator


class LibraryManager:
    """Hands out one Library per store file for the lifetime of the process."""
    _instance: Optional[Library] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        current_db = database.DATABASE_FILE
        # Rebuild if the store file changed (e.g. per-test stores)
        if cls._instance is None or current_db != cls._db_file_snapshot:
            cls._instance = Library(KeyValueStore(current_db))
            cls._db_file_snapshot = current_db
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None
        cls._db_file_snapshot = None


def _require_session(librarian: bool = False, action: str = ""):
    """Return the logged-in user, or print why the command cannot run and return None."""
    lib = LibraryManager.get_instance()
    user = auth.get_current_user(lib.store)
    if user is None:
        print("Please log in first.")
        return None
    if librarian and not user.is_librarian:
        print(f"Only librarians can {action}.")
        return None
    return user


# --- Typer CLI Application ---
app = typer.Typer(help=f"{settings.app_name} CLI")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    if output:
        set_output_mode(output)


@app.command("load")
def cli_load(source: Optional[str] = typer.Option(None, "--source", "-s", help="Seed URL or JSON file path")):
    """Load the seed catalogue and accounts."""
    lib = LibraryManager.get_instance()
    result = lib.reload_from_seed(source)
    if not result.ok:
        print(f"Warning: {result.error}")
        return
    print(f"Loaded {len(result.books)} books and {len(result.users)} users.")


@app.command("register")
def cli_register(
    username: str,
    password: str,
    role: str = typer.Option(ROLE_USER, "--role", "-r", help="user | librarian"),
):
    """Create a new account."""
    lib = LibraryManager.get_instance()
    user, error = auth.register_user(lib.store, username, password, role)
    if error:
        print(f"Error: {error}")
        return
    lib.reload()
    print(f"Registration successful! You can now log in as {user.username}.")


@app.command("login")
def cli_login(
    username: str,
    password: str,
    role: str = typer.Option(ROLE_USER, "--role", "-r", help="user | librarian"),
):
    """Log in and remember the session."""
    lib = LibraryManager.get_instance()
    user, error = auth.login(lib.store, username, password, role)
    if error:
        print(f"Error: {error}")
        return
    print(f"Welcome back, {user.username}!")


@app.command("logout")
def cli_logout():
    """End the current session."""
    lib = LibraryManager.get_instance()
    if auth.logout(lib.store):
        print("Logged out.")
    else:
        print("Nobody is logged in.")


@app.command("whoami")
def cli_whoami():
    """Show the logged-in account."""
    user = _require_session()
    if user:
        print(f"{user.username} ({user.role})")


@app.command("list")
def cli_list(search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter by title, author or genre")):
    """List books. Patrons see the shelf and their own loans; librarians see everything."""
    user = _require_session()
    if not user:
        return
    lib = LibraryManager.get_instance()
    books = lib.search_books(search or "")
    empty = "No books found matching your search." if search else "No books in library."

    if user.is_librarian:
        print_book_list(books, empty_message=empty)
        return

    available = [b for b in books if b.is_available]
    mine = [b for b in books if b.borrowed_by == user.username]
    print_patron_books(available, mine, empty_message=empty)


@app.command("search")
def cli_search(
    term: str = typer.Argument("", help="Title, author or genre to look for"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Reload the seed catalogue before searching"),
):
    """Search the catalogue without logging in."""
    lib = LibraryManager.get_instance()
    if refresh:
        result = lib.reload_from_seed()
        if not result.ok:
            print(f"Warning: {result.error}")
    print_public_results(lib.public_search(term))


@app.command("borrow")
def cli_borrow(book_id: int):
    """Borrow a book for the loan period."""
    user = _require_session()
    if not user:
        return
    lib = LibraryManager.get_instance()
    book = lib.borrow_book(book_id, user.username)
    if book is None:
        print(f"Book {book_id} is not available to borrow.")
        return
    print(f'You borrowed "{book.title}". Due on {book.due_date.date().isoformat()}')


@app.command("return")
def cli_return(book_id: int):
    """Return a book you borrowed."""
    user = _require_session()
    if not user:
        return
    lib = LibraryManager.get_instance()
    book = lib.return_book(book_id, user.username)
    if book is None:
        print(f"You have not borrowed book {book_id}.")
        return
    print(f'You have successfully returned "{book.title}".')


@app.command("add")
def cli_add(
    title: str,
    author: str,
    genre: str,
    image: Optional[str] = typer.Option(None, "--image", "-i", help="Cover image URL"),
):
    """Add a book to the catalogue (librarians only)."""
    if not _require_session(librarian=True, action="add books"):
        return
    title, author, genre = (TextValidator.sanitize_text(v) for v in (title, author, genre))
    if not BookValidator.validate_fields(title, author, genre):
        print("Error: Title, author and genre are required.")
        return
    if not BookValidator.validate_image_url(image):
        print("Error: Cover image must be a URL or a site path.")
        return
    lib = LibraryManager.get_instance()
    book = lib.add_book(title, author, genre, image)
    print(f'"{book.title}" has been added to the library with id {book.id}.')


@app.command("delete")
def cli_delete(
    book_id: int,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete an available book (librarians only)."""
    user = _require_session(librarian=True, action="delete books")
    if not user:
        return
    lib = LibraryManager.get_instance()
    book = lib.find_book(book_id)
    if book is None:
        print(f"Book {book_id} not found.")
        return
    if not yes and not typer.confirm("Are you sure you want to delete this book?"):
        print("Cancelled.")
        return
    try:
        lib.delete_book(book_id, user.role)
    except LibraryError as e:
        print(f"Error: {e}")
        return
    print(f'"{book.title}" has been deleted from the library.')


@app.command("history")
def cli_history():
    """Show your borrowing history, or everyone's for librarians."""
    user = _require_session()
    if not user:
        return
    lib = LibraryManager.get_instance()
    if user.role == ROLE_LIBRARIAN:
        print_all_histories(lib.all_borrowing_histories())
    else:
        print_user_history(lib.user_history(user.username))


@app.command("stats")
def cli_stats():
    """Show library statistics (librarians only)."""
    if not _require_session(librarian=True, action="view statistics"):
        return
    print_stats_result(LibraryManager.get_instance().get_statistics())


if __name__ == "__main__":
    app()
