from commit_plan import Action, plan_commit
from entities import Author, Book, Language, Quote, Topic


def _steps(entity):
    return [(step.action, step.entity) for step in plan_commit(entity)]


def test_new_leaf_is_a_single_insert():
    topic = Topic(topic="Stoicism")
    assert _steps(topic) == [(Action.INSERT, topic)]


def test_persisted_leaf_is_a_single_update():
    author = Author(id=4, name="Seneca")
    assert _steps(author) == [(Action.UPDATE, author)]


def test_new_book_commits_parents_first_in_fixed_order():
    author, topic, language = Author(name="A"), Topic(topic="T"), Language(language="L")
    book = Book(author=author, topic=topic, language=language, title="B")

    assert _steps(book) == [
        (Action.INSERT, author),
        (Action.INSERT, topic),
        (Action.INSERT, language),
        (Action.INSERT, book),
    ]


def test_new_book_with_existing_parents_updates_them():
    author, topic, language = Author(id=1, name="A"), Topic(id=2, topic="T"), Language(id=3, language="L")
    book = Book(author=author, topic=topic, language=language, title="B")

    actions = [action for action, _ in _steps(book)]
    assert actions == [Action.UPDATE, Action.UPDATE, Action.UPDATE, Action.INSERT]


def test_persisted_book_only_updates_itself():
    book = Book(id=9, author=Author(name="new"), topic=Topic(id=1), language=Language(id=1), title="B")
    assert _steps(book) == [(Action.UPDATE, book)]


def test_new_quote_on_new_book_recurses_through_the_book():
    book = Book(author=Author(id=1), topic=Topic(topic="T"), language=Language(id=2), title="B")
    quote = Quote(book=book, quote="Q")

    steps = plan_commit(quote)

    assert [s.statement for s in steps] == [
        "update_author",
        "insert_topic",
        "update_language",
        "insert_book",
        "insert_quote",
    ]
    assert steps[-1].entity is quote
