"""Registration, login and session handling.

Accounts live under the ``users`` key and the logged-in account under
``currentUser``. There is no hashing and no token: this is demo-grade session
glue, and passwords are compared as stored.

Functions return ``(user, error)`` where ``error`` is None on success or a
message that can be shown to the user as-is.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from lending_library.book import User, ROLES
from lending_library.database import KeyValueStore, USERS_KEY, CURRENT_USER_KEY
from lending_library.utils.validators import UserValidator

logger = logging.getLogger(__name__)


def _load_users(store: KeyValueStore) -> list:
    return [User.from_dict(item) for item in store.get(USERS_KEY, []) or []]


def register_user(store: KeyValueStore, username: str, password: str, role: str) -> Tuple[Optional[User], Optional[str]]:
    """Create a new account. Usernames must be unique ignoring case."""
    username = (username or "").strip()
    password = password or ""
    if not username or not password:
        return None, "Please enter a username and password."
    if not UserValidator.validate_username(username):
        return None, f"Username must be at least {UserValidator.MIN_LENGTH} characters long."
    if not UserValidator.validate_password(password):
        return None, f"Password must be at least {UserValidator.MIN_LENGTH} characters long."
    if role not in ROLES:
        return None, "Invalid role."

    users = _load_users(store)
    if any(u.username.lower() == username.lower() for u in users):
        return None, "Username already exists. Please choose another one."

    new_user = User(username=username, password=password, role=role)
    users.append(new_user)
    store.set(USERS_KEY, [u.to_dict() for u in users])
    logger.info(f"Registered {role} account '{username}'")
    return new_user, None


def login(store: KeyValueStore, username: str, password: str, role: str) -> Tuple[Optional[User], Optional[str]]:
    """Check credentials (exact match) and the selected role, then start a session."""
    username = (username or "").strip()
    user = next(
        (u for u in _load_users(store) if u.username == username and u.password == password),
        None,
    )
    if user is None:
        return None, "Invalid username or password. Please try again."
    if user.role != role:
        return None, (
            f"This account is registered as a {user.role}, not {role}. "
            "Please select the correct user type."
        )
    store.set(CURRENT_USER_KEY, user.to_dict())
    logger.info(f"'{username}' logged in as {role}")
    return user, None


def logout(store: KeyValueStore) -> bool:
    """End the current session. Returns True if someone was logged in."""
    return store.remove(CURRENT_USER_KEY)


def get_current_user(store: KeyValueStore) -> Optional[User]:
    data = store.get(CURRENT_USER_KEY)
    if not data:
        return None
    try:
        return User.from_dict(data)
    except (KeyError, TypeError):
        logger.warning("Stored session is unreadable, ignoring it")
        return None
