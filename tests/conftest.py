"""
Shared fixtures for SQLiter tests.
"""
import pytest

from sqliter.config import Config
from sqliter.connection import MEMORY, Connection


@pytest.fixture
def conn():
    """In-memory connection, closed after the test."""
    connection = Connection(MEMORY, config=Config())
    yield connection
    connection.close()


@pytest.fixture
def people(conn):
    """Connection holding a small people table."""
    conn.raw_exec(
        "CREATE TABLE people(id INTEGER PRIMARY KEY, name TEXT, age INTEGER, "
        "score REAL, photo BLOB)"
    )
    conn.raw_exec(
        "INSERT INTO people(id, name, age, score, photo) VALUES "
        "(1, 'Ann', 34, 7.5, x'0102'), "
        "(2, 'Bob', NULL, 3.25, NULL), "
        "(3, '12abc', 5000000000, NULL, x'')"
    )
    return conn


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"
