import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import settings
from entities import Entity
from errors import ConstraintError, StoreError
from library import Library
from mailer import digest_loop

logger = logging.getLogger(__name__)


# --- Models ---
class TopicModel(BaseModel):
    id: int
    topic: str


class AuthorModel(BaseModel):
    id: int
    name: str


class LanguageModel(BaseModel):
    id: int
    language: str


class BookModel(BaseModel):
    id: int
    title: str
    isbn: str | None = None
    release_date: date | None = None
    author: AuthorModel
    topic: TopicModel
    language: LanguageModel


class QuoteModel(BaseModel):
    id: int
    quote: str
    page: int
    record_date: datetime | None = None
    book: BookModel


class CreatedModel(BaseModel):
    id: int


class TopicCreateModel(BaseModel):
    topic: str = Field(min_length=1)


class TopicPatchModel(TopicCreateModel):
    id: int


class AuthorCreateModel(BaseModel):
    name: str = Field(min_length=1)


class AuthorPatchModel(AuthorCreateModel):
    id: int


class LanguageCreateModel(BaseModel):
    language: str = Field(min_length=1)


class LanguagePatchModel(LanguageCreateModel):
    id: int


class BookCreateModel(BaseModel):
    author_id: int
    topic_id: int
    language_id: int
    title: str = Field(min_length=1)
    isbn: str | None = None
    release_date: date | None = Field(default=None, description="Defaults to today")


class BookPatchModel(BaseModel):
    id: int
    title: str | None = None
    isbn: str | None = None
    release_date: date | None = None


class QuoteCreateModel(BaseModel):
    book_id: int
    quote: str = Field(min_length=1)
    page: int = Field(default=0, ge=0)


class QuotePatchModel(BaseModel):
    id: int
    quote: str | None = None
    page: int | None = Field(default=None, ge=0)


# --- Dependencies and helpers ---
def get_library(request: Request) -> Library:
    """The Library the application was created with."""
    return request.app.state.library


def _words(q: Optional[str]) -> List[str]:
    return q.split() if q else []


def _require(entity, name: str, id: int):
    if entity is None:
        raise HTTPException(status_code=404, detail=f"{name} {id} not found.")
    return entity


def _commit(entity: Entity) -> int:
    """Commit an entity and translate store failures into HTTP errors."""
    try:
        return entity.commit()
    except ConstraintError as e:
        raise HTTPException(status_code=400, detail=str(e))


router = APIRouter(prefix="/api")


# --- API Endpoints ---
@router.get("")
def help_message():
    return {
        "message": "Quote library API",
        "resources": ["/api/topics", "/api/authors", "/api/languages", "/api/books", "/api/quotes"],
    }


# Topics
@router.get("/topics", response_model=List[TopicModel])
def get_topics(q: Optional[str] = Query(default=None), library: Library = Depends(get_library)):
    """All topics, or the topics matching any word of ``q``."""
    if q is not None:
        topics = library.search_many(library.search_topics, _words(q))
    else:
        topics = library.get_topics()
    return [TopicModel(**t.to_dict()) for t in topics]


@router.get("/topics/{id}", response_model=TopicModel)
def get_topic(id: int, library: Library = Depends(get_library)):
    topic = _require(library.get_topic(id), "Topic", id)
    return TopicModel(**topic.to_dict())


@router.get("/topics/{id}/books", response_model=List[BookModel])
def get_related_books_of_topic(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    books = library.related_books_of_topic(id)
    if q is not None:
        books = library.filter_books(books, _words(q))
    return [BookModel(**b.to_dict()) for b in books]


@router.get("/topics/{id}/quotes", response_model=List[QuoteModel])
def get_related_quotes_of_topic(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    quotes = library.related_quotes_of_topic(id)
    if q is not None:
        quotes = library.filter_quotes(quotes, _words(q))
    return [QuoteModel(**x.to_dict()) for x in quotes]


@router.post("/topics", response_model=CreatedModel, status_code=201)
def post_topic(payload: TopicCreateModel, library: Library = Depends(get_library)):
    topic = library.database.new_topic(payload.topic)
    return CreatedModel(id=_commit(topic))


@router.patch("/topics", response_model=CreatedModel)
def patch_topic(payload: TopicPatchModel, library: Library = Depends(get_library)):
    topic = _require(library.get_topic(payload.id), "Topic", payload.id)
    topic.topic = payload.topic
    return CreatedModel(id=_commit(topic))


# Authors
@router.get("/authors", response_model=List[AuthorModel])
def get_authors(q: Optional[str] = Query(default=None), library: Library = Depends(get_library)):
    if q is not None:
        authors = library.search_many(library.search_authors, _words(q))
    else:
        authors = library.get_authors()
    return [AuthorModel(**a.to_dict()) for a in authors]


@router.get("/authors/{id}", response_model=AuthorModel)
def get_author(id: int, library: Library = Depends(get_library)):
    author = _require(library.get_author(id), "Author", id)
    return AuthorModel(**author.to_dict())


@router.get("/authors/{id}/books", response_model=List[BookModel])
def get_related_books_of_author(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    books = library.related_books_of_author(id)
    if q is not None:
        books = library.filter_books(books, _words(q))
    return [BookModel(**b.to_dict()) for b in books]


@router.get("/authors/{id}/quotes", response_model=List[QuoteModel])
def get_related_quotes_of_author(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    quotes = library.related_quotes_of_author(id)
    if q is not None:
        quotes = library.filter_quotes(quotes, _words(q))
    return [QuoteModel(**x.to_dict()) for x in quotes]


@router.post("/authors", response_model=CreatedModel, status_code=201)
def post_author(payload: AuthorCreateModel, library: Library = Depends(get_library)):
    author = library.database.new_author(payload.name)
    return CreatedModel(id=_commit(author))


@router.patch("/authors", response_model=CreatedModel)
def patch_author(payload: AuthorPatchModel, library: Library = Depends(get_library)):
    author = _require(library.get_author(payload.id), "Author", payload.id)
    author.name = payload.name
    return CreatedModel(id=_commit(author))


# Languages
@router.get("/languages", response_model=List[LanguageModel])
def get_languages(q: Optional[str] = Query(default=None), library: Library = Depends(get_library)):
    if q is not None:
        languages = library.search_many(library.search_languages, _words(q))
    else:
        languages = library.get_languages()
    return [LanguageModel(**x.to_dict()) for x in languages]


@router.get("/languages/{id}", response_model=LanguageModel)
def get_language(id: int, library: Library = Depends(get_library)):
    language = _require(library.get_language(id), "Language", id)
    return LanguageModel(**language.to_dict())


@router.get("/languages/{id}/books", response_model=List[BookModel])
def get_related_books_of_language(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    books = library.related_books_of_language(id)
    if q is not None:
        books = library.filter_books(books, _words(q))
    return [BookModel(**b.to_dict()) for b in books]


@router.get("/languages/{id}/quotes", response_model=List[QuoteModel])
def get_related_quotes_of_language(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    quotes = library.related_quotes_of_language(id)
    if q is not None:
        quotes = library.filter_quotes(quotes, _words(q))
    return [QuoteModel(**x.to_dict()) for x in quotes]


@router.post("/languages", response_model=CreatedModel, status_code=201)
def post_language(payload: LanguageCreateModel, library: Library = Depends(get_library)):
    language = library.database.new_language(payload.language)
    return CreatedModel(id=_commit(language))


@router.patch("/languages", response_model=CreatedModel)
def patch_language(payload: LanguagePatchModel, library: Library = Depends(get_library)):
    language = _require(library.get_language(payload.id), "Language", payload.id)
    language.language = payload.language
    return CreatedModel(id=_commit(language))


# Books
@router.get("/books", response_model=List[BookModel])
def get_books(q: Optional[str] = Query(default=None), library: Library = Depends(get_library)):
    """All books, or the books whose title or ISBN matches any word of ``q``."""
    if q is not None:
        books = library.search_many(library.search_books, _words(q))
    else:
        books = library.get_books()
    return [BookModel(**b.to_dict()) for b in books]


@router.get("/books/{id}", response_model=BookModel)
def get_book(id: int, library: Library = Depends(get_library)):
    book = _require(library.get_book(id), "Book", id)
    return BookModel(**book.to_dict())


@router.get("/books/{id}/quotes", response_model=List[QuoteModel])
def get_related_quotes_of_book(id: int, q: Optional[str] = None, library: Library = Depends(get_library)):
    quotes = library.related_quotes_of_book(id)
    if q is not None:
        quotes = library.filter_quotes(quotes, _words(q))
    return [QuoteModel(**x.to_dict()) for x in quotes]


@router.post("/books", response_model=CreatedModel, status_code=201)
def post_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    author = _require(library.get_author(payload.author_id), "Author", payload.author_id)
    topic = _require(library.get_topic(payload.topic_id), "Topic", payload.topic_id)
    language = _require(library.get_language(payload.language_id), "Language", payload.language_id)
    book = library.database.new_book(
        author, topic, language,
        title=payload.title,
        isbn=payload.isbn,
        release_date=payload.release_date,
    )
    return CreatedModel(id=_commit(book))


@router.patch("/books", response_model=CreatedModel)
def patch_book(payload: BookPatchModel, library: Library = Depends(get_library)):
    book = _require(library.get_book(payload.id), "Book", payload.id)
    if payload.title:
        book.title = payload.title
    if payload.isbn:
        book.isbn = payload.isbn
    if payload.release_date:
        book.release_date = payload.release_date
    return CreatedModel(id=_commit(book))


# Quotes
@router.get("/quotes", response_model=List[QuoteModel])
def get_quotes(q: Optional[str] = Query(default=None), library: Library = Depends(get_library)):
    if q is not None:
        quotes = library.search_many(library.search_quotes, _words(q))
    else:
        quotes = library.get_quotes()
    return [QuoteModel(**x.to_dict()) for x in quotes]


@router.get("/quotes/{id}", response_model=QuoteModel)
def get_quote(id: int, library: Library = Depends(get_library)):
    quote = _require(library.get_quote(id), "Quote", id)
    return QuoteModel(**quote.to_dict())


@router.post("/quotes", response_model=CreatedModel, status_code=201)
def post_quote(payload: QuoteCreateModel, library: Library = Depends(get_library)):
    book = _require(library.get_book(payload.book_id), "Book", payload.book_id)
    quote = library.database.new_quote(book, payload.quote, payload.page)
    return CreatedModel(id=_commit(quote))


@router.patch("/quotes", response_model=CreatedModel)
def patch_quote(payload: QuotePatchModel, library: Library = Depends(get_library)):
    quote = _require(library.get_quote(payload.id), "Quote", payload.id)
    if payload.quote:
        quote.quote = payload.quote
    if payload.page is not None:
        quote.page = payload.page
    return CreatedModel(id=_commit(quote))


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API around ``library``.

    Without a library the lifespan opens ``settings.database_file`` and closes it
    again on shutdown. The quote digest runs alongside when enabled in settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.library is None
        if owned:
            app.state.library = Library.open(settings.database_file)
        digest_task = None
        if settings.enable_mail_digest:
            digest_task = asyncio.create_task(digest_loop(app.state.library, settings))
        try:
            yield
        finally:
            if digest_task is not None:
                digest_task.cancel()
                await asyncio.gather(digest_task, return_exceptions=True)
            if owned:
                app.state.library.close()
                app.state.library = None

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    def health(request: Request):
        """Liveness plus a quick query against the store."""
        library = request.app.state.library
        db_ok = library is not None
        if db_ok:
            try:
                library.get_topics()
            except StoreError:
                db_ok = False
        return {"status": "ok" if db_ok else "degraded", "database": db_ok}

    app.include_router(router)
    return app
