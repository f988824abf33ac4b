from lending_library.database import KeyValueStore, get_db_connection


def test_set_get_remove(store):
    assert store.get("books") is None
    assert store.get("books", []) == []

    store.set("books", [{"id": 1}])
    assert store.get("books") == [{"id": 1}]
    assert store.contains("books")

    store.set("books", [])
    assert store.get("books") == []

    assert store.remove("books") is True
    assert store.remove("books") is False
    assert not store.contains("books")


def test_values_survive_reopen(tmp_path):
    path = str(tmp_path / "persist.db")
    KeyValueStore(path).set("currentUser", {"username": "ünïcode"})
    assert KeyValueStore(path).get("currentUser") == {"username": "ünïcode"}


def test_corrupt_value_reads_as_default(store):
    conn = get_db_connection(store.db_file)
    try:
        conn.execute("INSERT INTO kv_store (key, value) VALUES (?, ?)", ("users", "{broken"))
        conn.commit()
    finally:
        conn.close()
    assert store.get("users", []) == []


def test_keys(store):
    store.set("users", [])
    store.set("books", [])
    assert store.keys() == ["books", "users"]
