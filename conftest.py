import os
import sqlite3

import pytest
from fastapi.testclient import TestClient

from api import create_app
from database import connect
from library import Library

# Two of everything: book i is written by author i on topic i in language i,
# and quote i comes from book i.
FIXTURE_ROWS = [
    ("INSERT INTO Topics (Topic) VALUES (?)", [("Topic1",), ("Topic2",)]),
    ("INSERT INTO Authors (Name) VALUES (?)", [("Author1",), ("Author2",)]),
    ("INSERT INTO Languages (Language) VALUES (?)", [("Language1",), ("Language2",)]),
    (
        "INSERT INTO Books (AuthorId, TopicId, ISBN, Title, LanguageId, ReleaseDate) VALUES (?, ?, ?, ?, ?, ?)",
        [
            (1, 1, "978-3-16-148410-0", "Book1", 1, "2001-01-01"),
            (2, 2, "978-0-13-468599-1", "Book2", 2, "2002-02-02"),
        ],
    ),
    (
        "INSERT INTO Quotes (BookId, Quote, Page, RecordDate) VALUES (?, ?, ?, ?)",
        [
            (1, "Quote1", 11, "2020-01-01 10:00:00"),
            (2, "Quote2", 22, "2020-02-02 20:00:00"),
        ],
    ),
]


def seed(db_file: str) -> None:
    conn = sqlite3.connect(db_file)
    try:
        for sql, rows in FIXTURE_ROWS:
            conn.executemany(sql, rows)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def empty_database(db_file):
    db = connect(db_file)
    yield db
    db.close()


@pytest.fixture
def database(db_file):
    # connect() creates the schema, the fixture rows go in through a second connection
    db = connect(db_file)
    seed(db_file)
    yield db
    db.close()
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture
def lib(database):
    return Library(database)


@pytest.fixture
def client(lib):
    return TestClient(create_app(lib))
