from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_LIBRARIAN = "librarian"
ROLES = (ROLE_USER, ROLE_LIBRARIAN)

DEFAULT_LOAN_DAYS = 14

# Fields the Book class maps explicitly; anything else is carried in `extra`
_BOOK_FIELDS = {
    "id", "title", "author", "genre", "isAvailable", "borrowedBy",
    "borrowDate", "dueDate", "borrowHistory", "bookImage",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp (trailing 'Z' allowed) into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with millisecond precision, e.g. 2024-03-01T10:00:00.000Z."""
    dt = parse_timestamp(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class Available:
    """Lending status of a book on the shelf."""


@dataclass(frozen=True)
class Borrowed:
    """Lending status of a book out on loan."""
    borrower: str
    borrow_date: datetime
    due_date: datetime


class BorrowHistoryEntry:
    """One loan of a book. `return_date` is None while the loan is open."""

    def __init__(self, user: str, borrow_date: datetime, return_date: datetime | None = None) -> None:
        self.user = user
        self.borrow_date = borrow_date
        self.return_date = return_date

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    def to_dict(self) -> dict:
        data = {"user": self.user, "borrowDate": format_timestamp(self.borrow_date)}
        if self.return_date is not None:
            data["returnDate"] = format_timestamp(self.return_date)
        return data

    @staticmethod
    def from_dict(data: dict) -> "BorrowHistoryEntry":
        return_date = data.get("returnDate")
        return BorrowHistoryEntry(
            user=data["user"],
            borrow_date=parse_timestamp(data["borrowDate"]),
            return_date=parse_timestamp(return_date) if return_date else None,
        )


class Book:
    """A single book in the catalogue, with its lending status and borrow history."""

    def __init__(self, id: int, title: str, author: str, genre: str,
                 status: Available | Borrowed | None = None,
                 borrow_history: list[BorrowHistoryEntry] | None = None,
                 book_image: str | None = None, extra: dict | None = None) -> None:
        self.id = id
        self.title = title
        self.author = author
        self.genre = genre
        self.status = status or Available()
        self.borrow_history = borrow_history or []
        self.book_image = book_image
        # Seed records may carry fields we don't model (coverImage, isbn...)
        self.extra = extra or {}

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"#{self.id} {self.title} by {self.author} ({self.genre})"

    # ------------------------- Lending status ------------------------- #
    @property
    def is_available(self) -> bool:
        return isinstance(self.status, Available)

    @property
    def borrowed_by(self) -> str | None:
        return self.status.borrower if isinstance(self.status, Borrowed) else None

    @property
    def borrow_date(self) -> datetime | None:
        return self.status.borrow_date if isinstance(self.status, Borrowed) else None

    @property
    def due_date(self) -> datetime | None:
        return self.status.due_date if isinstance(self.status, Borrowed) else None

    @property
    def borrow_count(self) -> int:
        return len(self.borrow_history)

    def open_entry(self, username: str) -> BorrowHistoryEntry | None:
        """Most recent history entry for `username` that has not been returned."""
        for entry in reversed(self.borrow_history):
            if entry.user == username and entry.is_open:
                return entry
        return None

    def check_out(self, username: str, now: datetime, loan_days: int = DEFAULT_LOAN_DAYS) -> None:
        if not self.is_available:
            raise ValueError(f'"{self.title}" is already borrowed.')
        self.status = Borrowed(borrower=username, borrow_date=now, due_date=now + timedelta(days=loan_days))
        self.borrow_history.append(BorrowHistoryEntry(user=username, borrow_date=now))

    def check_in(self, username: str, now: datetime) -> None:
        if self.borrowed_by != username:
            raise ValueError(f'"{self.title}" is not borrowed by {username}.')
        entry = self.open_entry(username)
        if entry is not None:
            entry.return_date = now
        self.status = Available()

    # ------------------------- Serialisation ------------------------- #
    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "isAvailable": self.is_available,
        })
        if isinstance(self.status, Borrowed):
            data["borrowedBy"] = self.status.borrower
            data["borrowDate"] = format_timestamp(self.status.borrow_date)
            data["dueDate"] = format_timestamp(self.status.due_date)
        if self.book_image is not None:
            data["bookImage"] = self.book_image
        data["borrowHistory"] = [entry.to_dict() for entry in self.borrow_history]
        return data

    @staticmethod
    def from_dict(data: dict, loan_days: int = DEFAULT_LOAN_DAYS) -> "Book":
        history = [BorrowHistoryEntry.from_dict(item) for item in data.get("borrowHistory") or []]
        book = Book(
            id=int(data["id"]),
            title=data.get("title", ""),
            author=data.get("author", ""),
            genre=data.get("genre", ""),
            borrow_history=history,
            book_image=data.get("bookImage"),
            extra={k: v for k, v in data.items() if k not in _BOOK_FIELDS},
        )

        if not data.get("isAvailable", True):
            book.status = Book._loan_status_from_dict(book, data, loan_days)
        book._close_stale_entries()
        return book

    @staticmethod
    def _loan_status_from_dict(book: "Book", data: dict, loan_days: int) -> Available | Borrowed:
        borrower = data.get("borrowedBy")
        if not borrower:
            logger.warning(f"Book {book.id} is marked unavailable without a borrower, loading it as available")
            return Available()

        entry = book.open_entry(borrower)
        if data.get("borrowDate"):
            borrow_date = parse_timestamp(data["borrowDate"])
        elif entry is not None:
            borrow_date = entry.borrow_date
        else:
            logger.warning(f"Book {book.id} has no borrow date, loading it as available")
            return Available()

        if data.get("dueDate"):
            due_date = parse_timestamp(data["dueDate"])
        else:
            due_date = borrow_date + timedelta(days=loan_days)

        if entry is None:
            book.borrow_history.append(BorrowHistoryEntry(user=borrower, borrow_date=borrow_date))
        return Borrowed(borrower=borrower, borrow_date=borrow_date, due_date=due_date)

    def _close_stale_entries(self) -> None:
        """Close every open entry except the one for the current loan.

        A stale entry is closed at its own borrow date, so history stays append-only.
        """
        current = self.open_entry(self.borrowed_by) if self.borrowed_by else None
        for entry in self.borrow_history:
            if entry.is_open and entry is not current:
                logger.warning(f"Book {self.id} has a stale open loan for {entry.user}, closing it")
                entry.return_date = entry.borrow_date


class User:
    """A library account. Passwords are kept as plain text."""

    def __init__(self, username: str, password: str, role: str = ROLE_USER) -> None:
        self.username = username
        self.password = password
        self.role = role

    @property
    def is_librarian(self) -> bool:
        return self.role == ROLE_LIBRARIAN

    def to_dict(self) -> dict:
        return {"username": self.username, "password": self.password, "role": self.role}

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            username=data["username"],
            password=data.get("password", ""),
            role=data.get("role", ROLE_USER),
        )
