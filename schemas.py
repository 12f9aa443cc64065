from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=300)
    genre: str = Field(..., min_length=1, max_length=100)
    published_date: date
    rating: int = Field(..., ge=1, le=5)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=300)
    genre: Optional[str] = Field(None, min_length=1, max_length=100)
    published_date: Optional[date] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    # last token the client saw; omit to skip the stale-token check
    version_token: Optional[str] = None


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    genre: str
    published_date: date
    rating: int
    created_at: datetime
    updated_at: datetime
    version_token: str


class FavoriteCreate(BaseModel):
    book_id: int
    note: Optional[str] = Field(None, max_length=1000)


class FavoriteNoteUpdate(BaseModel):
    note: Optional[str] = Field(None, max_length=1000)


class FavoriteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    book: BookOut
    note: Optional[str]
    created_at: datetime
    updated_at: datetime


class ReadingSessionCreate(BaseModel):
    book_id: int
    start_time: datetime
    end_time: datetime
    pages_read: int = Field(0, ge=0)
    note: Optional[str] = Field(None, max_length=500)


class ReadingHistoryOut(BaseModel):
    id: int
    book_id: int
    book_title: str
    book_author: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    pages_read: int
    note: Optional[str]

    @classmethod
    def from_session(cls, s) -> "ReadingHistoryOut":
        return cls(
            id=s.id,
            book_id=s.book_id,
            book_title=s.book.title if s.book is not None else "Unknown",
            book_author=s.book.author if s.book is not None else "Unknown",
            start_time=s.start_time,
            end_time=s.end_time,
            duration_minutes=s.duration_minutes,
            pages_read=s.pages_read,
            note=s.note,
        )
