from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, ClassVar, Optional, Tuple

from errors import DetachedEntityError


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Tolerate rows written with a time component.
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class Entity:
    """Base for everything stored in the quote database.

    ``id == 0`` means the entity has never been persisted. ``store`` is the
    ``Database`` that hydrated or created the entity; ``commit()`` goes through it.
    """

    kind: ClassVar[str] = ""

    id: int = 0
    store: Any = field(default=None, repr=False, compare=False)

    @property
    def is_persisted(self) -> bool:
        return bool(self.id)

    def children(self) -> Tuple[Entity, ...]:
        """Owned references that must exist before this row can be inserted."""
        return ()

    def commit(self) -> int:
        """Insert the entity if it has no id yet, update it otherwise. Returns the id."""
        if self.store is None:
            raise DetachedEntityError(f"{type(self).__name__} is not bound to a database")
        return self.store.commit(self)

    def insert_params(self) -> tuple:
        raise NotImplementedError

    def update_params(self) -> tuple:
        raise NotImplementedError

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass
class Topic(Entity):
    kind: ClassVar[str] = "topic"

    topic: str = ""

    def insert_params(self) -> tuple:
        return (self.topic,)

    def update_params(self) -> tuple:
        return (self.topic, self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "topic": self.topic}

    @staticmethod
    def from_row(row, store=None) -> "Topic":
        return Topic(id=row["TopicId"], topic=row["TopicTopic"], store=store)


@dataclass
class Author(Entity):
    kind: ClassVar[str] = "author"

    name: str = ""

    def insert_params(self) -> tuple:
        return (self.name,)

    def update_params(self) -> tuple:
        return (self.name, self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}

    @staticmethod
    def from_row(row, store=None) -> "Author":
        return Author(id=row["AuthorId"], name=row["AuthorName"], store=store)


@dataclass
class Language(Entity):
    kind: ClassVar[str] = "language"

    language: str = ""

    def insert_params(self) -> tuple:
        return (self.language,)

    def update_params(self) -> tuple:
        return (self.language, self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "language": self.language}

    @staticmethod
    def from_row(row, store=None) -> "Language":
        return Language(id=row["LanguageId"], language=row["LanguageLanguage"], store=store)


@dataclass
class Book(Entity):
    kind: ClassVar[str] = "book"

    author: Author = field(default_factory=Author)
    topic: Topic = field(default_factory=Topic)
    language: Language = field(default_factory=Language)
    title: str = ""
    isbn: Optional[str] = None
    release_date: Optional[date] = None

    def children(self) -> Tuple[Entity, ...]:
        return (self.author, self.topic, self.language)

    def _row_values(self) -> tuple:
        # Empty ISBN is stored as NULL so the UNIQUE constraint only applies to real values.
        return (
            self.author.id,
            self.topic.id,
            self.isbn or None,
            self.title,
            self.language.id,
            self.release_date.isoformat() if self.release_date else None,
        )

    def insert_params(self) -> tuple:
        return self._row_values()

    def update_params(self) -> tuple:
        return self._row_values() + (self.id,)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "isbn": self.isbn,
            "release_date": self.release_date.isoformat() if self.release_date else None,
            "author": self.author.to_dict(),
            "topic": self.topic.to_dict(),
            "language": self.language.to_dict(),
        }

    @staticmethod
    def from_row(row, store=None) -> "Book":
        return Book(
            id=row["BookId"],
            author=Author.from_row(row, store),
            topic=Topic.from_row(row, store),
            language=Language.from_row(row, store),
            title=row["BookTitle"],
            isbn=row["BookISBN"],
            release_date=_parse_date(row["BookReleaseDate"]),
            store=store,
        )


@dataclass
class Quote(Entity):
    kind: ClassVar[str] = "quote"

    book: Book = field(default_factory=Book)
    quote: str = ""
    page: int = 0
    record_date: Optional[datetime] = None

    def children(self) -> Tuple[Entity, ...]:
        return (self.book,)

    def insert_params(self) -> tuple:
        record_date = self.record_date.isoformat(sep=" ", timespec="seconds") if self.record_date else None
        return (self.book.id, self.quote, self.page, record_date)

    def update_params(self) -> tuple:
        return (self.book.id, self.quote, self.page, self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote": self.quote,
            "page": self.page,
            "record_date": self.record_date.isoformat() if self.record_date else None,
            "book": self.book.to_dict(),
        }

    @staticmethod
    def from_row(row, store=None) -> "Quote":
        return Quote(
            id=row["QuoteId"],
            book=Book.from_row(row, store),
            quote=row["QuoteQuote"],
            page=row["QuotePage"],
            record_date=_parse_datetime(row["QuoteRecordDate"]),
            store=store,
        )
