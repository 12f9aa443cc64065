import uuid
from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, ForeignKey, Integer,
                        String, UniqueConstraint)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    # stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_version_token(current=None) -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"
    id   = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    books = relationship("Book", back_populates="owner")


class Book(Base):
    __tablename__ = "books"
    id      = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title   = Column(String(500), nullable=False)
    author  = Column(String(300), nullable=False, index=True)
    genre   = Column(String(100), nullable=False)     # free text, matched exactly
    published_date = Column(Date, nullable=False)
    rating  = Column(Integer, nullable=False)         # 1..5
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    is_deleted = Column(Boolean, nullable=False, default=False)
    version_token = Column(String(32), nullable=False)

    # every UPDATE is issued as "... WHERE version_token = <loaded token>"
    # and writes a fresh token; zero matched rows raises StaleDataError
    __mapper_args__ = {
        "version_id_col": version_token,
        "version_id_generator": new_version_token,
    }

    owner = relationship("User", back_populates="books")
    sessions = relationship("ReadingSession", back_populates="book")
    favorites = relationship("Favorite", back_populates="book")


class ReadingSession(Base):
    __tablename__ = "reading_sessions"
    id      = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time   = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    pages_read = Column(Integer, nullable=False, default=0)
    note       = Column(String(500))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User")
    book = relationship("Book", back_populates="sessions")


class Favorite(Base):
    __tablename__ = "favorites"
    id      = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    note    = Column(String(1000))
    # unfavoriting flips this flag; the row itself is kept for reactivation
    is_active  = Column(Boolean, nullable=False, default=True)
    version    = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_favorite_user_book"),)
    # toggles race on the same row; a stale write raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    user = relationship("User")
    book = relationship("Book", back_populates="favorites")
