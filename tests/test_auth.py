from lending_library import auth
from lending_library.database import CURRENT_USER_KEY, USERS_KEY


def test_register_and_login(store):
    user, error = auth.register_user(store, "  alice ", "secret", "user")
    assert error is None
    assert user.username == "alice"

    user, error = auth.login(store, "alice", "secret", "user")
    assert error is None
    assert store.get(CURRENT_USER_KEY) == {"username": "alice", "password": "secret", "role": "user"}
    assert auth.get_current_user(store).username == "alice"


def test_register_rejects_case_insensitive_duplicate(store):
    auth.register_user(store, "bob", "secret", "user")
    user, error = auth.register_user(store, "Bob", "other", "librarian")
    assert user is None
    assert error == "Username already exists. Please choose another one."
    assert len(store.get(USERS_KEY)) == 1


def test_register_validation_messages(store):
    assert auth.register_user(store, "", "secret", "user")[1] == "Please enter a username and password."
    assert auth.register_user(store, "al", "secret", "user")[1] == "Username must be at least 3 characters long."
    assert auth.register_user(store, "alice", "pw", "user")[1] == "Password must be at least 3 characters long."
    assert auth.register_user(store, "alice", "secret", "admin")[1] == "Invalid role."
    assert store.get(USERS_KEY) is None


def test_login_is_case_sensitive(store):
    auth.register_user(store, "alice", "secret", "user")
    user, error = auth.login(store, "Alice", "secret", "user")
    assert user is None
    assert error == "Invalid username or password. Please try again."


def test_login_with_wrong_role(store):
    auth.register_user(store, "alice", "secret", "user")
    user, error = auth.login(store, "alice", "secret", "librarian")
    assert user is None
    assert "registered as a user, not librarian" in error
    assert not store.contains(CURRENT_USER_KEY)


def test_logout(store):
    auth.register_user(store, "alice", "secret", "user")
    auth.login(store, "alice", "secret", "user")
    assert auth.logout(store) is True
    assert auth.get_current_user(store) is None
    assert auth.logout(store) is False
