import logging
from typing import Callable, Iterable, List, Optional, TypeVar

from database import Database, connect, escape_like
from entities import Author, Book, Entity, Language, Quote, Topic

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class Library:
    """Read access to the quote store.

    Every Book comes back with its Author, Topic and Language, every Quote with its
    full Book graph, and all of them are bound to the same ``Database`` so they can
    be edited and committed straight away.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    @classmethod
    def open(cls, db_file: str) -> "Library":
        return cls(connect(db_file))

    def close(self) -> None:
        self.database.close()

    # ------------------------- Hydration ------------------------- #
    def _all(self, hydrate: Callable[..., E], statement: str, params: tuple = ()) -> List[E]:
        rows = self.database.fetch_all(statement, params)
        return [hydrate(row, self.database) for row in rows]

    def _one(self, hydrate: Callable[..., E], statement: str, id: int) -> Optional[E]:
        row = self.database.fetch_one(statement, (id,))
        if row is None:
            return None
        return hydrate(row, self.database)

    def _search(self, hydrate: Callable[..., E], statement: str, text: str, columns: int = 1) -> List[E]:
        pattern = escape_like(text)
        return self._all(hydrate, statement, (pattern,) * columns)

    # ------------------------- Topics ------------------------- #
    def get_topics(self) -> List[Topic]:
        return self._all(Topic.from_row, "select_topics")

    def get_topic(self, id: int) -> Optional[Topic]:
        return self._one(Topic.from_row, "select_topic", id)

    def search_topics(self, text: str) -> List[Topic]:
        return self._search(Topic.from_row, "search_topics", text)

    def related_books_of_topic(self, id: int) -> List[Book]:
        return self._all(Book.from_row, "related_books_of_topic", (id,))

    def related_quotes_of_topic(self, id: int) -> List[Quote]:
        return self._all(Quote.from_row, "related_quotes_of_topic", (id,))

    # ------------------------- Authors ------------------------- #
    def get_authors(self) -> List[Author]:
        return self._all(Author.from_row, "select_authors")

    def get_author(self, id: int) -> Optional[Author]:
        return self._one(Author.from_row, "select_author", id)

    def search_authors(self, text: str) -> List[Author]:
        return self._search(Author.from_row, "search_authors", text)

    def related_books_of_author(self, id: int) -> List[Book]:
        return self._all(Book.from_row, "related_books_of_author", (id,))

    def related_quotes_of_author(self, id: int) -> List[Quote]:
        return self._all(Quote.from_row, "related_quotes_of_author", (id,))

    # ------------------------- Languages ------------------------- #
    def get_languages(self) -> List[Language]:
        return self._all(Language.from_row, "select_languages")

    def get_language(self, id: int) -> Optional[Language]:
        return self._one(Language.from_row, "select_language", id)

    def search_languages(self, text: str) -> List[Language]:
        return self._search(Language.from_row, "search_languages", text)

    def related_books_of_language(self, id: int) -> List[Book]:
        return self._all(Book.from_row, "related_books_of_language", (id,))

    def related_quotes_of_language(self, id: int) -> List[Quote]:
        return self._all(Quote.from_row, "related_quotes_of_language", (id,))

    # ------------------------- Books ------------------------- #
    def get_books(self) -> List[Book]:
        return self._all(Book.from_row, "select_books")

    def get_book(self, id: int) -> Optional[Book]:
        return self._one(Book.from_row, "select_book", id)

    def search_books(self, text: str) -> List[Book]:
        """Books whose title or ISBN contains ``text``."""
        return self._search(Book.from_row, "search_books", text, columns=2)

    def related_quotes_of_book(self, id: int) -> List[Quote]:
        return self._all(Quote.from_row, "related_quotes_of_book", (id,))

    # ------------------------- Quotes ------------------------- #
    def get_quotes(self) -> List[Quote]:
        return self._all(Quote.from_row, "select_quotes")

    def get_quote(self, id: int) -> Optional[Quote]:
        return self._one(Quote.from_row, "select_quote", id)

    def search_quotes(self, text: str) -> List[Quote]:
        return self._search(Quote.from_row, "search_quotes", text)

    # ------------------------- Multi-word helpers ------------------------- #
    @staticmethod
    def search_many(search: Callable[[str], List[E]], words: Iterable[str]) -> List[E]:
        """Run ``search`` once per word and concatenate the results, first hit wins."""
        found: List[E] = []
        seen = set()
        for word in words:
            for entity in search(word):
                if entity.id not in seen:
                    seen.add(entity.id)
                    found.append(entity)
        return found

    @staticmethod
    def filter_books(books: List[Book], words: Iterable[str]) -> List[Book]:
        """Keep books whose title or ISBN contains any of ``words`` (case-sensitive)."""
        words = [w for w in words if w]
        return [b for b in books if any(w in b.title or w in (b.isbn or "") for w in words)]

    @staticmethod
    def filter_quotes(quotes: List[Quote], words: Iterable[str]) -> List[Quote]:
        """Keep quotes whose text contains any of ``words`` (case-sensitive)."""
        words = [w for w in words if w]
        return [q for q in quotes if any(w in q.quote for w in words)]

    def get_statistics(self) -> dict:
        """Row counts per entity kind."""
        return {
            kind: self.database.fetch_one(f"count_{kind}")["Count"]
            for kind in ("topics", "authors", "languages", "books", "quotes")
        }
