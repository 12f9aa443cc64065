import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from errors import ValidationError
from models import ReadingSession, utcnow
from services.books import get_owned_book

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def log_reading_session(db: Session, user_id: str, book_id: int, start_time: datetime,
                        end_time: datetime, pages_read: int = 0,
                        note: Optional[str] = None) -> ReadingSession:
    book = get_owned_book(db, user_id, book_id)

    start, end = _as_utc(start_time), _as_utc(end_time)
    if end <= start:
        raise ValidationError("End time must be after start time")
    # whole minutes, truncated; a sub-minute session is rejected, not clamped
    duration = int((end - start).total_seconds() // 60)
    if duration <= 0:
        raise ValidationError("Reading session must last at least one minute")
    if pages_read is None or pages_read < 0:
        raise ValidationError("pages_read must be zero or more")

    session = ReadingSession(
        user_id=user_id,
        book_id=book.id,
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        pages_read=pages_read,
        note=note,
        created_at=utcnow(),
    )
    session.book = book
    db.add(session)
    db.commit()
    logger.info("reading session logged for book %r by user %s", book.title, user_id)
    return session


def reading_history(db: Session, user_id: str, page: int = 1,
                    page_size: int = 20) -> tuple[list[ReadingSession], int]:
    q = db.query(ReadingSession).filter(ReadingSession.user_id == user_id)
    total = q.count()
    items = (
        q.options(joinedload(ReadingSession.book))
         .order_by(ReadingSession.start_time.desc(), ReadingSession.id.desc())
         .offset((page - 1) * page_size)
         .limit(page_size)
         .all()
    )
    return items, total
