"""Seed dataset loading.

The seed document (``{"books": [...], "users": [...]}``) is fetched once per
load from an HTTP(S) URL or a local JSON file and reconciled into the store:

* books from the seed replace the stored catalogue wholesale, loan state
  included;
* users from the seed are only added when their username is not taken yet.

A failed fetch never raises. The stored data is kept and the caller gets a
warning to show.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from lending_library.book import Book, DEFAULT_LOAN_DAYS, ROLE_USER
from lending_library.config import settings
from lending_library.database import KeyValueStore, BOOKS_KEY, USERS_KEY, HISTORIES_KEY
from lending_library.history import aggregate_histories

logger = logging.getLogger(__name__)

SEED_FAILURE_MESSAGE = "Failed to load book data. Some features may not work."


class SeedHistoryEntryModel(BaseModel):
    user: str
    borrowDate: str
    returnDate: Optional[str] = None


class SeedBookModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    author: str
    genre: str
    isAvailable: bool = True
    borrowedBy: Optional[str] = None
    borrowDate: Optional[str] = None
    dueDate: Optional[str] = None
    bookImage: Optional[str] = None
    # null and missing both mean "never borrowed"
    borrowHistory: Optional[List[SeedHistoryEntryModel]] = None


class SeedUserModel(BaseModel):
    username: str
    password: str
    role: str = ROLE_USER


class SeedDocument(BaseModel):
    books: List[SeedBookModel] = []
    users: List[SeedUserModel] = []


class SeedLoadError(Exception):
    pass


@dataclass
class SeedResult:
    books: List[Dict[str, Any]] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None


def fetch_seed_document(source: str, timeout: float) -> Any:
    """Return the decoded seed JSON from a URL (single GET, no retry) or a file path."""
    if source.startswith(("http://", "https://")):
        resp = httpx.get(source, timeout=timeout)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise SeedLoadError(f"Seed request to {source} returned HTTP {resp.status_code}")
        return resp.json()
    with open(source, "r", encoding="utf-8") as f:
        return json.load(f)


def merge_users(existing: List[Dict[str, Any]], incoming: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Append each incoming user whose username (exact match) is not already present.

    Existing users always win, so a seed can never reset a stored password or role.
    """
    merged = list(existing)
    taken = {u.get("username") for u in merged}
    for user in incoming:
        if user.get("username") in taken:
            continue
        merged.append(user)
        taken.add(user.get("username"))
    return merged


def load_library_data(store: KeyValueStore, source: Optional[str] = None,
                      timeout: Optional[float] = None,
                      loan_days: int = DEFAULT_LOAN_DAYS) -> SeedResult:
    source = source or settings.seed_url
    timeout = settings.seed_timeout if timeout is None else timeout

    try:
        document = SeedDocument.model_validate(fetch_seed_document(source, timeout))
        # Normalising through Book keeps the loan fields and open history entries consistent
        seed_books = [Book.from_dict(b.model_dump(exclude_none=True), loan_days) for b in document.books]
    except (httpx.HTTPError, SeedLoadError, OSError, ValidationError, ValueError) as e:
        logger.error(f"Error loading library data from {source}: {e}")
        return SeedResult(
            books=store.get(BOOKS_KEY, []) or [],
            users=store.get(USERS_KEY, []) or [],
            ok=False,
            error=SEED_FAILURE_MESSAGE,
        )

    books = [b.to_dict() for b in seed_books]
    store.set(BOOKS_KEY, books)

    users = merge_users(store.get(USERS_KEY, []) or [], [u.model_dump() for u in document.users])
    store.set(USERS_KEY, users)

    if not store.contains(HISTORIES_KEY):
        store.set(HISTORIES_KEY, aggregate_histories(seed_books))

    logger.info(f"Loaded {len(books)} books and {len(users)} users from {source}")
    return SeedResult(books=books, users=users)
