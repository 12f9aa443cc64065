import io
import logging
from datetime import date, datetime

import pandas as pd
from sqlalchemy.orm import Session

from errors import ValidationError
from models import Book, utcnow

logger = logging.getLogger(__name__)

# columns of the Goodreads "export library" CSV we rely on
REQUIRED = ["Title", "Author", "My Rating", "Original Publication Year", "Bookshelves"]

# exclusive shelves are reading states, not genres
STATUS_SHELVES = {"read", "to-read", "currently-reading"}
DEFAULT_GENRE = "Uncategorized"

def _to_int(x):
    try:
        if x is None:
            return None
        if isinstance(x, (int, float)):
            if pd.isna(x):
                return None
            v = int(float(x))
            return v if v != 0 else None
        # strings like "384.0" or "1,024"
        s = str(x).strip()
        if not s or s.lower() == "nan":
            return None
        s = s.replace(",", "")
        v = int(float(s))
        return v if v != 0 else None
    except (TypeError, ValueError):
        return None

def _to_rating(x):
    # Goodreads 'My Rating' uses 0 for unrated; the catalog needs 1..5
    v = _to_int(x)
    return v if (v is not None and 1 <= v <= 5) else None

def _to_date(s):
    if s is None:
        return None
    s = str(s).strip()
    if not s or s.lower() == "nan":
        return None
    for fmt in ("%Y/%m/%d", "%Y-%m-%d", "%m/%d/%Y"):
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None

def _to_genre(shelves):
    if shelves is None or pd.isna(shelves):
        return DEFAULT_GENRE
    for shelf in str(shelves).split(","):
        shelf = shelf.strip()
        if shelf and shelf not in STATUS_SHELVES:
            return shelf
    return DEFAULT_GENRE

def import_library_csv(file_bytes: bytes, db: Session, user_id: str) -> dict:
    # Read a Goodreads export and add each rated, not-yet-cataloged book
    try:
        df = pd.read_csv(io.BytesIO(file_bytes))
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise ValidationError(f"could not parse CSV: {exc}")
    missing = [c for c in REQUIRED if c not in df.columns]
    if missing:
        return {"ok": False, "error": f"missing columns: {missing}"}

    existing = {
        (title, author)
        for title, author in db.query(Book.title, Book.author)
                               .filter(Book.user_id == user_id, Book.is_deleted.is_(False))
                               .all()
    }

    books_added = 0
    duplicates = 0
    skipped = 0
    today = utcnow().date()

    for _, row in df.iterrows():
        title  = str(row["Title"]).strip() if pd.notna(row["Title"]) else None
        author = str(row["Author"]).strip() if pd.notna(row["Author"]) else None
        rating = _to_rating(row["My Rating"])
        if not title or not author or rating is None:
            skipped += 1
            continue

        if (title, author) in existing:
            duplicates += 1
            continue

        year = _to_int(row["Original Publication Year"])
        published = date(year, 1, 1) if year and 1450 <= year <= today.year else None
        if published is None:
            skipped += 1
            continue

        # "Date Added" drives the rating trend; fall back to now
        added_at = _to_date(row.get("Date Added")) or utcnow()

        db.add(Book(
            user_id=user_id,
            title=title,
            author=author,
            genre=_to_genre(row["Bookshelves"]),
            published_date=published,
            rating=rating,
            created_at=added_at,
            updated_at=added_at,
        ))
        existing.add((title, author))
        books_added += 1

    db.commit()
    logger.info("imported %d books for user %s (%d duplicates, %d skipped)",
                books_added, user_id, duplicates, skipped)
    return {
        "ok": True,
        "books_added": books_added,
        "duplicates": duplicates,
        "skipped": skipped,
        "total_rows": int(len(df)),
    }
