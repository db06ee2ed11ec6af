import sqlite3

import pytest

from dbexport.services import file_registry


@pytest.fixture
def make_db(tmp_path):
    """Builds a real SQLite file from a SQL script and returns its bytes."""
    counter = {"n": 0}

    def _make(script: str = "") -> bytes:
        counter["n"] += 1
        path = tmp_path / f"db_{counter['n']}.sqlite"
        conn = sqlite3.connect(str(path))
        conn.executescript(script)
        conn.commit()
        conn.close()
        return path.read_bytes()

    return _make


@pytest.fixture
def shop_db(make_db):
    return make_db(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, avatar BLOB, score REAL);
        INSERT INTO users VALUES (1, 'alice', x'cafe', 1.5);
        INSERT INTO users VALUES (2, 'bob', NULL, NULL);
        CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER, total REAL);
        CREATE TABLE items (sku TEXT, qty INTEGER);
        INSERT INTO items VALUES ('a-1', 3), ('b-2', 5), ('c-3', 7);
        """
    )


@pytest.fixture(autouse=True)
def empty_registry():
    file_registry.clear_files()
    yield
    file_registry.clear_files()
