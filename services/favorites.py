"""Lifecycle of the (user, book) favorite relationship.

A row is created on the first favorite and never deleted afterwards:
removing a favorite flips ``is_active`` off, favoriting again flips it back
on and overwrites the note. At most one row exists per (user, book).
"""
import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from errors import Conflict, NotFound
from models import Book, Favorite, utcnow
from services.books import get_owned_book

logger = logging.getLogger(__name__)


def _active_favorite(db: Session, user_id: str, book_id: int) -> Optional[Favorite]:
    return (
        db.query(Favorite)
          .join(Book, Book.id == Favorite.book_id)
          .filter(Favorite.user_id == user_id,
                  Favorite.book_id == book_id,
                  Favorite.is_active.is_(True),
                  Book.is_deleted.is_(False))
          .first()
    )


def _commit_toggle(db: Session, book_id: int, user_id: str) -> None:
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("favorite of book %s by user %s changed concurrently", book_id, user_id)
        raise Conflict("The favorite was modified by another request. Please refresh and try again.")


def add_favorite(db: Session, user_id: str, book_id: int, note: Optional[str] = None) -> Favorite:
    get_owned_book(db, user_id, book_id)

    favorite = db.query(Favorite).filter_by(user_id=user_id, book_id=book_id).first()
    now = utcnow()
    if favorite is not None:
        if favorite.is_active:
            raise Conflict("Book is already in favorites")
        # reactivate; the supplied note wins even when it is None
        favorite.is_active = True
        favorite.note = note
        favorite.updated_at = now
    else:
        favorite = Favorite(user_id=user_id, book_id=book_id, note=note,
                            is_active=True, created_at=now, updated_at=now)
        db.add(favorite)

    try:
        db.commit()
    except (IntegrityError, StaleDataError):
        # another request created or reactivated the row after our read
        db.rollback()
        logger.warning("concurrent favorite of book %s by user %s", book_id, user_id)
        raise Conflict("Book is already in favorites")

    logger.info("book %s added to favorites by user %s", book_id, user_id)
    return favorite


def remove_favorite(db: Session, user_id: str, book_id: int) -> None:
    favorite = _active_favorite(db, user_id, book_id)
    if favorite is None:
        raise NotFound("Favorite not found")
    favorite.is_active = False
    favorite.updated_at = utcnow()
    _commit_toggle(db, book_id, user_id)
    logger.info("book %s removed from favorites by user %s", book_id, user_id)


def update_note(db: Session, user_id: str, book_id: int, note: Optional[str]) -> Favorite:
    favorite = _active_favorite(db, user_id, book_id)
    if favorite is None:
        raise NotFound("Favorite not found")
    favorite.note = note
    favorite.updated_at = utcnow()
    _commit_toggle(db, book_id, user_id)
    logger.info("note updated for favorite book %s by user %s", book_id, user_id)
    return favorite


def is_favorited(db: Session, user_id: str, book_id: int) -> bool:
    return _active_favorite(db, user_id, book_id) is not None


def count_active_favorites(db: Session, book_id: int) -> int:
    return (
        db.query(func.count(Favorite.id))
          .join(Book, Book.id == Favorite.book_id)
          .filter(Favorite.book_id == book_id,
                  Favorite.is_active.is_(True),
                  Book.is_deleted.is_(False))
          .scalar()
    ) or 0


def list_favorites(db: Session, user_id: str, genre: Optional[str] = None,
                   search: Optional[str] = None, page: int = 1,
                   page_size: int = 20) -> tuple[list[Favorite], int]:
    q = (
        db.query(Favorite)
          .join(Book, Book.id == Favorite.book_id)
          .options(joinedload(Favorite.book))
          .filter(Favorite.user_id == user_id,
                  Favorite.is_active.is_(True),
                  Book.is_deleted.is_(False))
    )
    if genre:
        q = q.filter(Book.genre.ilike(f"%{genre}%"))
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(Book.title.ilike(pattern),
                         Book.author.ilike(pattern),
                         Favorite.note.ilike(pattern)))

    total = q.count()
    items = (
        q.order_by(Favorite.created_at.desc(), Favorite.id.desc())
         .offset((page - 1) * page_size)
         .limit(page_size)
         .all()
    )
    return items, total


def popular_books(db: Session, user_id: str, limit: int = 10,
                  genre: Optional[str] = None) -> list[dict]:
    books = db.query(Book).filter(Book.user_id == user_id, Book.is_deleted.is_(False))
    if genre:
        books = books.filter(func.lower(Book.genre) == genre.lower())
    books = books.all()

    counts = dict(
        db.query(Favorite.book_id, func.count(Favorite.id))
          .join(Book, Book.id == Favorite.book_id)
          .filter(Book.user_id == user_id,
                  Book.is_deleted.is_(False),
                  Favorite.is_active.is_(True))
          .group_by(Favorite.book_id)
          .all()
    )
    mine = {
        book_id for (book_id,) in
        db.query(Favorite.book_id)
          .filter(Favorite.user_id == user_id, Favorite.is_active.is_(True))
          .all()
    }

    ranked = [
        {
            "book_id": b.id,
            "title": b.title,
            "author": b.author,
            "genre": b.genre,
            "favorite_count": counts.get(b.id, 0),
            "rating": b.rating,
            "is_favorited_by_current_user": b.id in mine,
        }
        for b in books
    ]
    ranked.sort(key=lambda r: (-r["favorite_count"], -r["rating"], r["book_id"]))
    return ranked[:limit]
