import logging
import sqlite3
import threading
from datetime import date
from typing import Dict, List, Optional

from commit_plan import Action, plan_commit
from entities import Author, Book, Entity, Language, Quote, Topic
from errors import ConstraintError, DatabaseClosedError, DatabaseInitError, StoreError

logger = logging.getLogger(__name__)

# Parent tables first so the foreign key references resolve.
SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS Topics (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        Topic TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Authors (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        Name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Languages (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        Language TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Books (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        AuthorId INTEGER NOT NULL REFERENCES Authors(Id),
        TopicId INTEGER NOT NULL REFERENCES Topics(Id),
        ISBN TEXT UNIQUE,
        Title TEXT NOT NULL,
        LanguageId INTEGER NOT NULL REFERENCES Languages(Id),
        ReleaseDate DATE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS Quotes (
        Id INTEGER PRIMARY KEY AUTOINCREMENT,
        BookId INTEGER NOT NULL REFERENCES Books(Id),
        Quote TEXT NOT NULL,
        Page INTEGER NOT NULL DEFAULT 0 CHECK (Page >= 0),
        RecordDate TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_books_author_id ON Books(AuthorId)",
    "CREATE INDEX IF NOT EXISTS idx_books_topic_id ON Books(TopicId)",
    "CREATE INDEX IF NOT EXISTS idx_books_language_id ON Books(LanguageId)",
    "CREATE INDEX IF NOT EXISTS idx_quotes_book_id ON Quotes(BookId)",
)

# Column aliases are what the entities' from_row() hydration reads.
_TOPIC_SELECT = "SELECT Id AS TopicId, Topic AS TopicTopic FROM Topics"
_AUTHOR_SELECT = "SELECT Id AS AuthorId, Name AS AuthorName FROM Authors"
_LANGUAGE_SELECT = "SELECT Id AS LanguageId, Language AS LanguageLanguage FROM Languages"
_BOOK_SELECT = """
    SELECT b.Id AS BookId, b.ISBN AS BookISBN, b.Title AS BookTitle, b.ReleaseDate AS BookReleaseDate,
           a.Id AS AuthorId, a.Name AS AuthorName,
           t.Id AS TopicId, t.Topic AS TopicTopic,
           l.Id AS LanguageId, l.Language AS LanguageLanguage
    FROM Books b
    JOIN Authors a ON a.Id = b.AuthorId
    JOIN Topics t ON t.Id = b.TopicId
    JOIN Languages l ON l.Id = b.LanguageId
"""
_QUOTE_SELECT = """
    SELECT q.Id AS QuoteId, q.Quote AS QuoteQuote, q.Page AS QuotePage, q.RecordDate AS QuoteRecordDate,
           b.Id AS BookId, b.ISBN AS BookISBN, b.Title AS BookTitle, b.ReleaseDate AS BookReleaseDate,
           a.Id AS AuthorId, a.Name AS AuthorName,
           t.Id AS TopicId, t.Topic AS TopicTopic,
           l.Id AS LanguageId, l.Language AS LanguageLanguage
    FROM Quotes q
    JOIN Books b ON b.Id = q.BookId
    JOIN Authors a ON a.Id = b.AuthorId
    JOIN Topics t ON t.Id = b.TopicId
    JOIN Languages l ON l.Id = b.LanguageId
"""
_LIKE = "LIKE '%' || ? || '%' ESCAPE '\\'"

STATEMENTS: Dict[str, str] = {
    # select all
    "select_topics": f"{_TOPIC_SELECT} ORDER BY Id",
    "select_authors": f"{_AUTHOR_SELECT} ORDER BY Id",
    "select_languages": f"{_LANGUAGE_SELECT} ORDER BY Id",
    "select_books": f"{_BOOK_SELECT} ORDER BY b.Id",
    "select_quotes": f"{_QUOTE_SELECT} ORDER BY q.Id",
    # select by id
    "select_topic": f"{_TOPIC_SELECT} WHERE Id = ?",
    "select_author": f"{_AUTHOR_SELECT} WHERE Id = ?",
    "select_language": f"{_LANGUAGE_SELECT} WHERE Id = ?",
    "select_book": f"{_BOOK_SELECT} WHERE b.Id = ?",
    "select_quote": f"{_QUOTE_SELECT} WHERE q.Id = ?",
    # row counts
    "count_topics": "SELECT COUNT(*) AS Count FROM Topics",
    "count_authors": "SELECT COUNT(*) AS Count FROM Authors",
    "count_languages": "SELECT COUNT(*) AS Count FROM Languages",
    "count_books": "SELECT COUNT(*) AS Count FROM Books",
    "count_quotes": "SELECT COUNT(*) AS Count FROM Quotes",
    # substring search
    "search_topics": f"{_TOPIC_SELECT} WHERE Topic {_LIKE} ORDER BY Id",
    "search_authors": f"{_AUTHOR_SELECT} WHERE Name {_LIKE} ORDER BY Id",
    "search_languages": f"{_LANGUAGE_SELECT} WHERE Language {_LIKE} ORDER BY Id",
    "search_books": f"{_BOOK_SELECT} WHERE b.Title {_LIKE} OR b.ISBN {_LIKE} ORDER BY b.Id",
    "search_quotes": f"{_QUOTE_SELECT} WHERE q.Quote {_LIKE} ORDER BY q.Id",
    # related by foreign key
    "related_books_of_topic": f"{_BOOK_SELECT} WHERE b.TopicId = ? ORDER BY b.Id",
    "related_books_of_author": f"{_BOOK_SELECT} WHERE b.AuthorId = ? ORDER BY b.Id",
    "related_books_of_language": f"{_BOOK_SELECT} WHERE b.LanguageId = ? ORDER BY b.Id",
    "related_quotes_of_topic": f"{_QUOTE_SELECT} WHERE b.TopicId = ? ORDER BY q.Id",
    "related_quotes_of_author": f"{_QUOTE_SELECT} WHERE b.AuthorId = ? ORDER BY q.Id",
    "related_quotes_of_language": f"{_QUOTE_SELECT} WHERE b.LanguageId = ? ORDER BY q.Id",
    "related_quotes_of_book": f"{_QUOTE_SELECT} WHERE q.BookId = ? ORDER BY q.Id",
    # insert
    "insert_topic": "INSERT INTO Topics (Topic) VALUES (?)",
    "insert_author": "INSERT INTO Authors (Name) VALUES (?)",
    "insert_language": "INSERT INTO Languages (Language) VALUES (?)",
    "insert_book": (
        "INSERT INTO Books (AuthorId, TopicId, ISBN, Title, LanguageId, ReleaseDate) "
        "VALUES (?, ?, ?, ?, ?, ?)"
    ),
    "insert_quote": (
        "INSERT INTO Quotes (BookId, Quote, Page, RecordDate) "
        "VALUES (?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))"
    ),
    # update
    "update_topic": "UPDATE Topics SET Topic = ? WHERE Id = ?",
    "update_author": "UPDATE Authors SET Name = ? WHERE Id = ?",
    "update_language": "UPDATE Languages SET Language = ? WHERE Id = ?",
    "update_book": (
        "UPDATE Books SET AuthorId = ?, TopicId = ?, ISBN = ?, Title = ?, LanguageId = ?, ReleaseDate = ? "
        "WHERE Id = ?"
    ),
    "update_quote": "UPDATE Quotes SET BookId = ?, Quote = ?, Page = ? WHERE Id = ?",
}


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so search terms match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    """An open quote store: one SQLite connection plus its statement catalogue.

    Use ``connect()`` to obtain one. The handle is shared between the HTTP
    worker threads and the mail digest. One connection means one transaction,
    so every statement together with its commit or rollback runs under ``_lock``.
    """

    def __init__(self, connection: sqlite3.Connection, path: str) -> None:
        self._conn: Optional[sqlite3.Connection] = connection
        self._lock = threading.RLock()
        self.path = path

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        """Release the connection. Later operations raise DatabaseClosedError."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
        logger.info(f"Closed quote database {self.path}")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------- Statement execution ------------------------- #
    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseClosedError(f"Database {self.path} is closed")
        return self._conn

    def _execute(self, name: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self._connection()
        try:
            return conn.execute(STATEMENTS[name], params)
        except sqlite3.IntegrityError as e:
            raise ConstraintError(f"{name} violated a constraint: {e}") from e
        except sqlite3.Error as e:
            raise StoreError(f"{name} failed: {e}") from e

    def fetch_all(self, name: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._execute(name, params).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"{name} failed: {e}") from e

    def fetch_one(self, name: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            try:
                return self._execute(name, params).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"{name} failed: {e}") from e

    # ------------------------- Commit protocol ------------------------- #
    def commit(self, entity: Entity) -> int:
        """Insert or update ``entity`` (and, on insert, its children first).

        Each step is committed on its own: a failure part way through leaves the
        steps that already ran in the database. A step holds ``_lock`` from its
        statement to its commit or rollback, so a rollback never reaches another
        thread's pending statement.
        """
        for step in plan_commit(entity):
            target = step.entity
            with self._lock:
                self._run_step(step.action, step.statement, target, entity)
            # Entities committed through this store stay bound to it.
            target.store = self
        return entity.id

    def _run_step(self, action: Action, statement: str, target: Entity, entity: Entity) -> None:
        conn = self._connection()
        try:
            if action is Action.INSERT:
                cursor = self._execute(statement, target.insert_params())
                conn.commit()
                target.id = cursor.lastrowid
                logger.debug(f"Inserted {target.kind} {target.id}")
            else:
                self._execute(statement, target.update_params())
                conn.commit()
                logger.debug(f"Updated {target.kind} {target.id}")
        except StoreError:
            conn.rollback()
            logger.warning(f"Commit of {entity.kind} stopped at {statement}")
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"{statement} could not be committed: {e}") from e

    # ------------------------- Factories ------------------------- #
    def new_topic(self, topic: str = "") -> Topic:
        return Topic(topic=topic, store=self)

    def new_author(self, name: str = "") -> Author:
        return Author(name=name, store=self)

    def new_language(self, language: str = "") -> Language:
        return Language(language=language, store=self)

    def new_book(self, author: Author, topic: Topic, language: Language, title: str = "",
                 isbn: Optional[str] = None, release_date: Optional[date] = None) -> Book:
        return Book(
            author=author,
            topic=topic,
            language=language,
            title=title,
            isbn=isbn,
            release_date=release_date or date.today(),
            store=self,
        )

    def new_quote(self, book: Book, quote: str = "", page: int = 0) -> Quote:
        return Quote(book=book, quote=quote, page=page, store=self)


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the five tables and their indexes if they do not exist."""
    for ddl in SCHEMA:
        conn.execute(ddl)
    conn.commit()


def prepare_statements(conn: sqlite3.Connection) -> None:
    """Compile every catalogue statement once so broken SQL fails at startup."""
    for name, sql in STATEMENTS.items():
        try:
            conn.execute(f"EXPLAIN {sql}", (None,) * sql.count("?"))
        except sqlite3.Error as e:
            raise DatabaseInitError(f"Could not prepare statement '{name}': {e}") from e


def connect(path: str) -> Database:
    """Open (or create) the quote store at ``path`` and make it ready for use."""
    try:
        conn = sqlite3.connect(path, check_same_thread=False, cached_statements=len(STATEMENTS) + 16)
    except sqlite3.Error as e:
        raise DatabaseInitError(f"Could not open database '{path}': {e}") from e
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        create_tables(conn)
        prepare_statements(conn)
    except sqlite3.Error as e:
        conn.close()
        raise DatabaseInitError(f"Could not initialize database '{path}': {e}") from e
    except DatabaseInitError:
        conn.close()
        raise
    logger.info(f"Connected to quote database {path}")
    return Database(conn, path)
