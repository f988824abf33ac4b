import logging
import sqlite3
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from lending_library.book import Book, User, ROLE_LIBRARIAN, utc_now
from lending_library.config import settings
from lending_library.database import KeyValueStore, BOOKS_KEY, USERS_KEY, HISTORIES_KEY
from lending_library.history import aggregate_histories, user_history
from lending_library.seed import SeedResult, load_library_data

logger = logging.getLogger(__name__)


class LibraryError(ValueError):
    """A lending rule refused the operation; the message is meant for the user."""


class BookBorrowedError(LibraryError):
    pass


class PermissionDeniedError(LibraryError):
    pass


class Library:
    """Owns the catalogue and user list for one store, and every lending operation on them.

    State is hydrated from the store when the object is created and flushed
    back after each mutation, together with a rebuilt borrowing history index.
    """

    def __init__(self, store: Optional[KeyValueStore] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 loan_days: Optional[int] = None) -> None:
        self.store = store or KeyValueStore()
        self.clock = clock or utc_now
        self.loan_days = settings.loan_days if loan_days is None else loan_days
        # Lending operations and seed reloads both read-modify-write `books`
        self._lock = threading.RLock()
        self.books: List[Book] = []
        self.users: List[User] = []
        self.reload()

    # ------------------------- Core operations ------------------------- #
    def add_book(self, title: str, author: str, genre: str, image_url: Optional[str] = None) -> Book:
        """Add a new, available book with the next free id. Librarian-only; the caller checks the role."""
        title, author, genre = (title or "").strip(), (author or "").strip(), (genre or "").strip()
        if not (title and author and genre):
            raise ValueError("Title, author and genre are required.")

        with self._lock:
            new_id = max((b.id for b in self.books), default=0) + 1
            book = Book(
                id=new_id,
                title=title,
                author=author,
                genre=genre,
                book_image=(image_url or "").strip() or settings.default_book_image,
            )
            self.books.append(book)
            self._commit()
        logger.info(f"Added book {book.id}: {book.title}")
        return book

    def borrow_book(self, book_id: int, username: str) -> Optional[Book]:
        """Lend a book to `username`. Returns None, changing nothing, if it is missing or already out."""
        with self._lock:
            book = self.find_book(book_id)
            if book is None:
                logger.debug(f"Borrow ignored: book {book_id} not found")
                return None
            if not book.is_available:
                logger.debug(f"Borrow ignored: book {book_id} is already borrowed by {book.borrowed_by}")
                return None
            book.check_out(username, self.clock(), self.loan_days)
            self._commit()
        logger.info(f"{username} borrowed book {book.id}, due {book.due_date.date()}")
        return book

    def return_book(self, book_id: int, username: str) -> Optional[Book]:
        """Take a book back from its borrower. Returns None, changing nothing, for any other caller."""
        with self._lock:
            book = self.find_book(book_id)
            if book is None:
                logger.debug(f"Return ignored: book {book_id} not found")
                return None
            if book.is_available or book.borrowed_by != username:
                logger.debug(f"Return ignored: book {book_id} is not on loan to {username}")
                return None
            book.check_in(username, self.clock())
            self._commit()
        logger.info(f"{username} returned book {book.id}")
        return book

    def delete_book(self, book_id: int, requester_role: str) -> bool:
        """Remove an available book. Raises BookBorrowedError while it is on loan."""
        if requester_role != ROLE_LIBRARIAN:
            raise PermissionDeniedError("Only librarians can delete books.")
        with self._lock:
            book = self.find_book(book_id)
            if book is None:
                return False
            if not book.is_available:
                raise BookBorrowedError(f'Cannot delete "{book.title}" because it\'s currently borrowed.')
            self.books = [b for b in self.books if b.id != book_id]
            self._commit()
        logger.info(f"Deleted book {book_id}: {book.title}")
        return True

    def list_books(self) -> List[Book]:
        return list(self.books)

    def find_book(self, book_id: int) -> Optional[Book]:
        for book in self.books:
            if book.id == book_id:
                return book
        return None

    def find_user(self, username: str) -> Optional[User]:
        for user in self.users:
            if user.username == username:
                return user
        return None

    def borrowed_books(self, username: str) -> List[Book]:
        return [b for b in self.books if b.borrowed_by == username]

    @staticmethod
    def sorted_books(books: List[Book]) -> List[Book]:
        """Available books first, then by title (case-sensitive)."""
        return sorted(books, key=lambda b: (not b.is_available, b.title))

    def search_books(self, term: Optional[str] = "") -> List[Book]:
        """Case-insensitive substring search over title, author and genre. A blank term matches all."""
        needle = (term or "").strip().lower()
        matches = [
            b for b in self.books
            if not needle
            or needle in (b.title or "").lower()
            or needle in (b.author or "").lower()
            or needle in (b.genre or "").lower()
        ]
        return self.sorted_books(matches)

    def public_search(self, term: Optional[str] = "") -> List[Book]:
        """Catalogue search for visitors who are not logged in.

        Records missing a title, author or genre are left out, and available
        books come first; otherwise catalogue order is kept.
        """
        needle = (term or "").strip().lower()
        matches = [
            b for b in self.books
            if b.title and b.author and b.genre
            and (not needle
                 or needle in b.title.lower()
                 or needle in b.author.lower()
                 or needle in b.genre.lower())
        ]
        return sorted(matches, key=lambda b: not b.is_available)

    def get_statistics(self) -> Dict[str, Any]:
        total_books = len(self.books)
        available_books = sum(1 for b in self.books if b.is_available)

        most_borrowed = None
        max_borrows = 0
        # Lowest id wins a tie
        for book in sorted(self.books, key=lambda b: b.id):
            if book.borrow_count > max_borrows:
                max_borrows = book.borrow_count
                most_borrowed = book

        return {
            "total_books": total_books,
            "available_books": available_books,
            "borrowed_books": total_books - available_books,
            "most_borrowed_book": {
                "title": most_borrowed.title,
                "borrow_count": max_borrows,
            } if most_borrowed else None,
        }

    # ------------------------- Histories ------------------------- #
    def all_borrowing_histories(self) -> Dict[str, List[dict]]:
        histories = self.store.get(HISTORIES_KEY)
        if histories is None:
            histories = self.refresh_histories()
        return histories

    def user_history(self, username: str) -> List[dict]:
        return user_history(self.books, username)

    def refresh_histories(self) -> Dict[str, List[dict]]:
        histories = aggregate_histories(self.books)
        self.store.set(HISTORIES_KEY, histories)
        return histories

    # ------------------------- Persistence ------------------------- #
    def reload(self) -> None:
        """Re-hydrate books and users from the store, skipping records that cannot be parsed."""
        with self._lock:
            self.books = self._load_records(BOOKS_KEY, lambda d: Book.from_dict(d, self.loan_days))
            self.users = self._load_records(USERS_KEY, User.from_dict)

    def reload_from_seed(self, source: Optional[str] = None, timeout: Optional[float] = None) -> SeedResult:
        """Fetch the seed dataset, reconcile it into the store and re-hydrate, all under the lending lock."""
        with self._lock:
            result = load_library_data(self.store, source=source, timeout=timeout, loan_days=self.loan_days)
            self.reload()
        return result

    def _load_records(self, key: str, factory: Callable[[dict], Any]) -> list:
        records = []
        for item in self.store.get(key, []) or []:
            try:
                records.append(factory(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable record under '{key}': {e}")
        return records

    def _commit(self) -> None:
        """Persist the catalogue and rebuild the history index; roll memory back if the write fails."""
        try:
            self.store.set(BOOKS_KEY, [b.to_dict() for b in self.books])
            self.refresh_histories()
        except sqlite3.Error:
            logger.error("Failed to persist library state, reloading from store")
            self.reload()
            raise

    def close(self) -> None:
        """The store opens a connection per operation, so there is nothing to release."""
        return None
