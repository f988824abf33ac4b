"""Borrowing history projections.

The per-user index stored under ``allBorrowingHistories`` is a cache derived
from the books' own ``borrowHistory`` logs. It is never updated in place: the
library rebuilds it from scratch after every mutation, so it cannot drift
from the catalogue.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from lending_library.book import Book, format_timestamp


def aggregate_histories(books: Iterable[Book]) -> Dict[str, List[dict]]:
    """Group every history entry of every book by borrower.

    Books are visited in ascending id order and entries in log order; the
    per-user lists are not sorted chronologically.
    """
    histories: Dict[str, List[dict]] = {}
    for book in sorted(books, key=lambda b: b.id):
        for entry in book.borrow_history:
            histories.setdefault(entry.user, []).append({
                "bookTitle": book.title,
                "borrowDate": format_timestamp(entry.borrow_date),
                "returnDate": format_timestamp(entry.return_date) if entry.return_date else None,
            })
    return histories


def user_history(books: Iterable[Book], username: str) -> List[dict]:
    """A single patron's history, most recent borrow first."""
    rows = []
    for book in books:
        for entry in book.borrow_history:
            if entry.user != username:
                continue
            rows.append((entry.borrow_date, {
                "title": book.title,
                "user": entry.user,
                "borrowDate": format_timestamp(entry.borrow_date),
                "returnDate": format_timestamp(entry.return_date) if entry.return_date else None,
            }))
    rows.sort(key=lambda row: row[0], reverse=True)
    return [row for _, row in rows]
