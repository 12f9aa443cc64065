import logging
from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import Conflict, NotFound, ValidationError
from models import Book, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "author", "genre", "published_date", "rating")
EARLIEST_PUBLISHED = date(1450, 1, 1)

CONFLICT_MESSAGE = "The book has been modified by another user. Please refresh and try again."


def _validate(fields: dict) -> dict:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"unknown book fields: {sorted(unknown)}")

    for name in ("title", "author", "genre"):
        if name in fields:
            value = (fields[name] or "").strip()
            if not value:
                raise ValidationError(f"{name} is required")
            fields[name] = value

    if "rating" in fields:
        rating = fields["rating"]
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ValidationError("rating must be between 1 and 5")

    if "published_date" in fields:
        published = fields["published_date"]
        if published is None:
            raise ValidationError("published_date is required")
        if published > utcnow().date():
            raise ValidationError("published date cannot be in the future")
        if published < EARLIEST_PUBLISHED:
            raise ValidationError("published date seems unrealistic (before the printing press)")
    return fields


def get_owned_book(db: Session, user_id: str, book_id: int) -> Book:
    book = (
        db.query(Book)
          .filter(Book.id == book_id,
                  Book.user_id == user_id,
                  Book.is_deleted.is_(False))
          .first()
    )
    if book is None:
        raise NotFound("Book not found")
    return book


def create_book(db: Session, user_id: str, **fields) -> Book:
    missing = [f for f in EDITABLE_FIELDS if f not in fields]
    if missing:
        raise ValidationError(f"missing book fields: {missing}")
    fields = _validate(dict(fields))

    now = utcnow()
    book = Book(user_id=user_id, created_at=now, updated_at=now, **fields)
    db.add(book)
    db.commit()
    logger.info("book %s created by user %s", book.id, user_id)
    return book


def list_books(db: Session, user_id: str, genre: Optional[str] = None,
               search: Optional[str] = None) -> list[Book]:
    q = db.query(Book).filter(Book.user_id == user_id, Book.is_deleted.is_(False))
    if genre:
        q = q.filter(Book.genre.ilike(f"%{genre}%"))
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Book.title.ilike(pattern),
                         Book.author.ilike(pattern),
                         Book.genre.ilike(pattern)))
    return q.order_by(Book.created_at.desc(), Book.id.desc()).all()


def list_genres(db: Session, user_id: str) -> list[str]:
    rows = (
        db.query(Book.genre)
          .filter(Book.user_id == user_id, Book.is_deleted.is_(False))
          .distinct()
          .order_by(Book.genre)
          .all()
    )
    return [genre for (genre,) in rows]


def update_book(db: Session, user_id: str, book_id: int, fields: dict,
                version_token: Optional[str] = None) -> Book:
    """Apply ``fields`` to a book guarded by its version token.

    A supplied token that differs from the stored one is rejected before any
    field is touched. A write that lands between our read and our commit is
    caught by the versioned UPDATE and reported the same way. Omitting the
    token skips the first check only.
    """
    book = get_owned_book(db, user_id, book_id)

    if version_token is not None and book.version_token is not None \
            and version_token != book.version_token:
        logger.warning("stale version token for book %s (user %s)", book_id, user_id)
        raise Conflict(CONFLICT_MESSAGE)

    fields = _validate(dict(fields))
    for name, value in fields.items():
        setattr(book, name, value)
    book.updated_at = utcnow()

    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("lost update detected for book %s (user %s)", book_id, user_id)
        raise Conflict(CONFLICT_MESSAGE)

    logger.info("book %s updated by user %s", book_id, user_id)
    return book


def delete_book(db: Session, user_id: str, book_id: int) -> None:
    book = get_owned_book(db, user_id, book_id)
    book.is_deleted = True
    book.updated_at = utcnow()
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise Conflict(CONFLICT_MESSAGE)
    logger.info("book %s deleted by user %s", book_id, user_id)
