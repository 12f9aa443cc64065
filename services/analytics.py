from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from config import settings
from models import Book, Favorite, ReadingSession, utcnow
from services import aggregator


@dataclass
class Snapshot:
    books: list
    sessions: list
    favorites_count: int


def load_snapshot(db: Session, user_id: str, with_sessions: bool = True) -> Snapshot:
    # read once; the aggregator works on these lists only
    books = (
        db.query(Book)
          .filter(Book.user_id == user_id, Book.is_deleted.is_(False))
          .all()
    )
    sessions = []
    if with_sessions:
        sessions = (
            db.query(ReadingSession)
              .options(joinedload(ReadingSession.book))
              .filter(ReadingSession.user_id == user_id)
              .all()
        )
    favorites_count = (
        db.query(func.count(Favorite.id))
          .join(Book, Book.id == Favorite.book_id)
          .filter(Favorite.user_id == user_id,
                  Favorite.is_active.is_(True),
                  Book.is_deleted.is_(False))
          .scalar()
    ) or 0
    return Snapshot(books=books, sessions=sessions, favorites_count=favorites_count)


def build_analytics(snapshot: Snapshot, now: datetime) -> dict:
    books, sessions = snapshot.books, snapshot.sessions
    return {
        "overview": aggregator.overview(books, sessions, snapshot.favorites_count, now),
        "rating_trends": aggregator.rating_trends(books, months=settings.trend_months),
        "genre_trends": aggregator.genre_trends(books, sessions),
        "reading_stats": aggregator.reading_stats(sessions, now.date()),
        "top_books": aggregator.top_books(sessions, limit=settings.top_n),
        "top_authors": aggregator.top_authors(books, sessions, limit=settings.top_n),
        "monthly_stats": aggregator.monthly_rollup(books, sessions, now, months=settings.rollup_months),
    }


def get_advanced_analytics(db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
    return build_analytics(load_snapshot(db, user_id), now or utcnow())


def get_rating_trends(db: Session, user_id: str, months: Optional[int] = None) -> list[dict]:
    snapshot = load_snapshot(db, user_id, with_sessions=False)
    if months is None:
        months = settings.trend_months
    return aggregator.rating_trends(snapshot.books, months=months)


def get_genre_trends(db: Session, user_id: str) -> list[dict]:
    snapshot = load_snapshot(db, user_id)
    return aggregator.genre_trends(snapshot.books, snapshot.sessions)
