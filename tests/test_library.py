from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from entities import Author, Book, Language, Quote, Topic
from library import Library


def test_get_topics_in_id_order(lib):
    topics = lib.get_topics()
    assert [(t.id, t.topic) for t in topics] == [(1, "Topic1"), (2, "Topic2")]


def test_get_one_and_missing(lib):
    assert lib.get_topic(1).topic == "Topic1"
    assert lib.get_author(2).name == "Author2"
    assert lib.get_language(1).language == "Language1"
    assert lib.get_topic(69) is None
    assert lib.get_book(69) is None
    assert lib.get_quote(69) is None


def test_empty_store_returns_empty_lists(empty_database):
    lib = Library(empty_database)
    assert lib.get_quotes() == []
    assert lib.search_books("x") == []
    assert lib.get_statistics() == {"topics": 0, "authors": 0, "languages": 0, "books": 0, "quotes": 0}


def test_book_graph_is_hydrated(lib):
    book = lib.get_book(2)

    assert book.title == "Book2"
    assert book.isbn == "978-0-13-468599-1"
    assert book.release_date == date(2002, 2, 2)
    assert book.author == Author(id=2, name="Author2")
    assert book.topic == Topic(id=2, topic="Topic2")
    assert book.language == Language(id=2, language="Language2")


def test_quote_graph_is_hydrated_and_bound(lib, database):
    quote = lib.get_quote(1)

    assert quote.quote == "Quote1"
    assert quote.page == 11
    assert quote.record_date == datetime(2020, 1, 1, 10, 0, 0)
    assert quote.book.title == "Book1"
    assert quote.book.author.name == "Author1"
    for entity in (quote, quote.book, quote.book.author, quote.book.topic, quote.book.language):
        assert entity.store is database


def test_hydrated_entity_commits_through_its_store(lib):
    author = lib.get_quote(2).book.author
    author.name = "Renamed Author"
    author.commit()

    assert lib.get_author(2).name == "Renamed Author"
    assert lib.get_book(2).author.name == "Renamed Author"


@pytest.mark.parametrize(
    "search,text,expected",
    [
        ("search_topics", "Topic", [1, 2]),
        ("search_topics", "c2", [2]),
        ("search_authors", "author1", [1]),
        ("search_languages", "Lang", [1, 2]),
        ("search_books", "Book", [1, 2]),
        ("search_books", "468599", [2]),
        ("search_quotes", "Quote2", [2]),
        ("search_quotes", "nothing", []),
    ],
)
def test_search(lib, search, text, expected):
    assert [e.id for e in getattr(lib, search)(text)] == expected


def test_search_treats_wildcards_literally(lib, database):
    database.new_quote(lib.get_book(1), "100% sure").commit()
    database.new_quote(lib.get_book(1), "snake_case").commit()

    assert [q.quote for q in lib.search_quotes("%")] == ["100% sure"]
    assert [q.quote for q in lib.search_quotes("_")] == ["snake_case"]


def test_related_books(lib):
    assert [b.title for b in lib.related_books_of_topic(1)] == ["Book1"]
    assert [b.title for b in lib.related_books_of_author(2)] == ["Book2"]
    assert [b.title for b in lib.related_books_of_language(1)] == ["Book1"]
    assert lib.related_books_of_author(69) == []


def test_related_quotes(lib, database):
    database.new_quote(lib.get_book(1), "Quote3", page=33).commit()

    assert [q.quote for q in lib.related_quotes_of_book(1)] == ["Quote1", "Quote3"]
    assert [q.quote for q in lib.related_quotes_of_topic(1)] == ["Quote1", "Quote3"]
    assert [q.quote for q in lib.related_quotes_of_author(2)] == ["Quote2"]
    assert [q.quote for q in lib.related_quotes_of_language(2)] == ["Quote2"]
    assert lib.related_quotes_of_book(69) == []


def test_search_many_merges_without_duplicates(lib):
    found = lib.search_many(lib.search_books, ["Book2", "Book", "missing"])
    assert [b.id for b in found] == [2, 1]
    assert lib.search_many(lib.search_books, []) == []


def test_filter_books_and_quotes():
    author, topic, language = Author(id=1, name="A"), Topic(id=1, topic="T"), Language(id=1, language="L")
    books = [
        Book(id=1, author=author, topic=topic, language=language, title="Meditations", isbn="111"),
        Book(id=2, author=author, topic=topic, language=language, title="Letters", isbn=None),
    ]
    quotes = [Quote(id=1, book=books[0], quote="Waste no more time"), Quote(id=2, book=books[1], quote="Luck")]

    assert [b.id for b in Library.filter_books(books, ["Letters", "111"])] == [1, 2]
    assert Library.filter_books(books, ["letters"]) == []
    assert [q.id for q in Library.filter_quotes(quotes, ["time"])] == [1]
    assert Library.filter_quotes(quotes, []) == []


def test_statistics(lib):
    assert lib.get_statistics() == {"topics": 2, "authors": 2, "languages": 2, "books": 2, "quotes": 2}


def test_statistics_count_rows_without_loading_them(lib, database, monkeypatch):
    database.new_topic("Topic3").commit()
    for name in ("get_topics", "get_authors", "get_languages", "get_books", "get_quotes"):
        monkeypatch.setattr(Library, name, MagicMock(side_effect=AssertionError(name)))

    assert lib.get_statistics() == {"topics": 3, "authors": 2, "languages": 2, "books": 2, "quotes": 2}


def test_open_and_close(db_file):
    lib = Library.open(db_file)
    assert lib.get_books() == []
    lib.close()
    assert lib.database.closed
