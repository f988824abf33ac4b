from datetime import datetime, timedelta, timezone

import pytest

from lending_library.book import (
    Book, BorrowHistoryEntry, Borrowed, User, format_timestamp, parse_timestamp,
)

NOW = datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_format_timestamp_matches_browser_iso_format():
    assert format_timestamp(NOW) == "2024-03-01T10:00:00.000Z"
    assert format_timestamp(NOW.replace(microsecond=123456)) == "2024-03-01T10:00:00.123Z"


def test_parse_timestamp_accepts_z_and_naive_values():
    assert parse_timestamp("2024-03-01T10:00:00.000Z") == NOW
    assert parse_timestamp("2024-03-01T10:00:00") == NOW
    assert parse_timestamp("2024-03-01T12:00:00+02:00") == NOW


def test_check_out_and_check_in():
    book = Book(1, "Dune", "Frank Herbert", "Sci-Fi")
    book.check_out("alice", NOW)
    assert book.status == Borrowed("alice", NOW, NOW + timedelta(days=14))

    with pytest.raises(ValueError):
        book.check_out("bob", NOW)
    with pytest.raises(ValueError):
        book.check_in("bob", NOW)

    book.check_in("alice", NOW + timedelta(days=1))
    assert book.is_available
    assert book.borrow_history[0].return_date == NOW + timedelta(days=1)


def test_available_book_serialises_without_loan_fields():
    data = Book(1, "Dune", "Frank Herbert", "Sci-Fi").to_dict()
    assert data["isAvailable"] is True
    assert "borrowedBy" not in data and "borrowDate" not in data and "dueDate" not in data
    assert data["borrowHistory"] == []


def test_borrowed_book_round_trips():
    book = Book(1, "Dune", "Frank Herbert", "Sci-Fi")
    book.check_out("alice", NOW)
    data = book.to_dict()
    assert data["borrowedBy"] == "alice"
    assert data["dueDate"] == "2024-03-15T10:00:00.000Z"
    assert data["borrowHistory"] == [{"user": "alice", "borrowDate": "2024-03-01T10:00:00.000Z"}]

    again = Book.from_dict(data)
    assert again.status == book.status
    assert len(again.borrow_history) == 1


def test_unknown_seed_fields_are_kept():
    data = {"id": 5, "title": "T", "author": "A", "genre": "G", "isAvailable": True, "coverImage": "/c.jpg"}
    assert Book.from_dict(data).to_dict()["coverImage"] == "/c.jpg"


def test_from_dict_fills_missing_due_date_and_open_entry():
    data = {
        "id": 1, "title": "T", "author": "A", "genre": "G",
        "isAvailable": False, "borrowedBy": "alice", "borrowDate": "2024-03-01T10:00:00.000Z",
    }
    book = Book.from_dict(data)
    assert book.due_date == NOW + timedelta(days=14)
    assert [(e.user, e.is_open) for e in book.borrow_history] == [("alice", True)]


def test_from_dict_takes_borrow_date_from_open_entry():
    data = {
        "id": 1, "title": "T", "author": "A", "genre": "G",
        "isAvailable": False, "borrowedBy": "alice",
        "borrowHistory": [{"user": "alice", "borrowDate": "2024-03-01T10:00:00Z"}],
    }
    book = Book.from_dict(data)
    assert book.borrow_date == NOW
    assert len(book.borrow_history) == 1


def test_from_dict_without_borrower_loads_as_available():
    data = {"id": 1, "title": "T", "author": "A", "genre": "G", "isAvailable": False}
    assert Book.from_dict(data).is_available


def test_from_dict_closes_open_entry_on_available_book():
    data = {
        "id": 1, "title": "T", "author": "A", "genre": "G", "isAvailable": True,
        "borrowHistory": [{"user": "a", "borrowDate": "2024-01-01T00:00:00.000Z"}],
    }
    book = Book.from_dict(data)
    assert book.is_available
    entry = book.borrow_history[0]
    assert not entry.is_open
    assert entry.return_date == entry.borrow_date

    book.check_out("bob", NOW)
    assert [e.user for e in book.borrow_history if e.is_open] == ["bob"]


def test_from_dict_keeps_only_the_current_borrowers_entry_open():
    data = {
        "id": 1, "title": "T", "author": "A", "genre": "G",
        "isAvailable": False, "borrowedBy": "alice", "borrowDate": "2024-03-01T10:00:00.000Z",
        "borrowHistory": [
            {"user": "carol", "borrowDate": "2024-02-01T10:00:00.000Z"},
            {"user": "alice", "borrowDate": "2024-03-01T10:00:00.000Z"},
        ],
    }
    book = Book.from_dict(data)
    assert book.borrowed_by == "alice"
    assert [(e.user, e.is_open) for e in book.borrow_history] == [("carol", False), ("alice", True)]
    assert book.borrow_history[0].return_date == datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)


def test_history_entry_omits_return_date_while_open():
    entry = BorrowHistoryEntry("alice", NOW)
    assert entry.to_dict() == {"user": "alice", "borrowDate": "2024-03-01T10:00:00.000Z"}
    entry.return_date = NOW
    assert BorrowHistoryEntry.from_dict(entry.to_dict()).return_date == NOW


def test_user_defaults_to_patron_role():
    user = User.from_dict({"username": "alice", "password": "pw1"})
    assert user.role == "user"
    assert not user.is_librarian
    assert User("lib", "pw", "librarian").is_librarian
