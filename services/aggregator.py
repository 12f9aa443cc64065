"""Temporal and categorical aggregates over one user's library snapshot.

Inputs are plain sequences: the user's non-deleted books and all of the
user's reading sessions, each session carrying its resolved ``book`` (or
None). Nothing here touches the database.
"""
import calendar
from collections import defaultdict
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from services.streaks import calculate_streaks, session_dates


def round_half_up(value, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _mean(values, places: int = 2) -> float:
    values = list(values)
    if not values:
        return 0.0
    return round_half_up(sum(values) / len(values), places)


def _known_book(session):
    # missing or soft-deleted books count toward totals but are never grouped
    book = getattr(session, "book", None)
    if book is None or book.is_deleted:
        return None
    return book


def _month_key(value: datetime) -> tuple[int, int]:
    return value.year, value.month


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def rating_trends(books, months=None) -> list[dict]:
    groups = defaultdict(list)
    for b in books:
        groups[_month_key(b.created_at)].append(b.rating)

    trends = [
        {
            "date": date(year, month, 1),
            "average_rating": _mean(ratings),
            "book_count": len(ratings),
        }
        for (year, month), ratings in groups.items()
    ]
    trends.sort(key=lambda t: t["date"])
    if months is not None:
        trends = trends[-months:] if months > 0 else []
    return trends


def genre_trends(books, sessions) -> list[dict]:
    books = list(books)
    total = len(books)

    by_genre = defaultdict(list)
    for b in books:
        by_genre[b.genre].append(b.rating)

    minutes = defaultdict(int)
    for s in sessions:
        book = _known_book(s)
        if book is not None:
            minutes[book.genre] += s.duration_minutes

    trends = [
        {
            "genre": genre,
            "count": len(ratings),
            "percentage": round_half_up(len(ratings) / total * 100, 1) if total else 0.0,
            "average_rating": _mean(ratings),
            "total_minutes_read": minutes.get(genre, 0),
        }
        for genre, ratings in by_genre.items()
    ]
    trends.sort(key=lambda t: (-t["count"], t["genre"]))
    return trends


def monthly_rollup(books, sessions, now: datetime, months: int = 6) -> list[dict]:
    books = list(books)
    sessions = list(sessions)

    rollup = []
    for offset in range(months):
        year, month = _shift_month(now.year, now.month, -offset)
        added = [b for b in books if _month_key(b.created_at) == (year, month)]
        read = [s for s in sessions if _month_key(s.start_time) == (year, month)]
        rollup.append({
            "month": calendar.month_name[month],
            "year": year,
            "books_added": len(added),
            "books_read": len({s.book_id for s in read}),
            "minutes_read": sum(s.duration_minutes for s in read),
            "average_rating": _mean(b.rating for b in added),
        })
    # walked newest-first; emitted oldest-first
    rollup.reverse()
    return rollup


def top_authors(books, sessions, limit: int = 5) -> list[dict]:
    ratings = defaultdict(list)
    for b in books:
        ratings[b.author].append(b.rating)

    minutes = defaultdict(int)
    for s in sessions:
        book = _known_book(s)
        if book is not None:
            minutes[book.author] += s.duration_minutes

    authors = [
        {
            "author": author,
            "book_count": len(ratings.get(author, [])),
            "average_rating": _mean(ratings.get(author, [])),
            "total_minutes_read": minutes.get(author, 0),
        }
        for author in set(ratings) | set(minutes)
    ]
    authors.sort(key=lambda a: (-a["total_minutes_read"], a["author"]))
    return authors[:limit]


def top_books(sessions, limit: int = 5) -> list[dict]:
    grouped = {}
    for s in sessions:
        book = _known_book(s)
        if book is None:
            continue
        entry = grouped.setdefault(book.id, {
            "book_id": book.id,
            "title": book.title,
            "author": book.author,
            "rating": book.rating,
            "reading_sessions": 0,
            "total_minutes_read": 0,
        })
        entry["reading_sessions"] += 1
        entry["total_minutes_read"] += s.duration_minutes

    ranked = sorted(grouped.values(), key=lambda e: (-e["total_minutes_read"], e["book_id"]))
    return ranked[:limit]


def _most_read(sessions, key, label) -> str:
    minutes = defaultdict(int)
    labels = {}
    for s in sessions:
        book = _known_book(s)
        if book is not None:
            minutes[key(book)] += s.duration_minutes
            labels[key(book)] = label(book)
    if not minutes:
        return "N/A"
    best = min(minutes.items(), key=lambda kv: (-kv[1], kv[0]))[0]
    return labels[best]


def overview(books, sessions, favorites_count: int, now: datetime) -> dict:
    books = list(books)
    sessions = list(sessions)
    this_month = _month_key(now)
    return {
        "total_books": len(books),
        "total_favorites": favorites_count,
        "average_rating": _mean(b.rating for b in books),
        "total_reading_sessions": len(sessions),
        "total_minutes_read": sum(s.duration_minutes for s in sessions),
        "total_pages_read": sum(s.pages_read for s in sessions),
        "books_read_this_month": len({s.book_id for s in sessions if _month_key(s.start_time) == this_month}),
        "books_added_this_month": sum(1 for b in books if _month_key(b.created_at) == this_month),
    }


def reading_stats(sessions, today: date) -> dict:
    sessions = list(sessions)
    streaks = calculate_streaks(session_dates(sessions), today)
    return {
        "total_sessions": len(sessions),
        "total_minutes": sum(s.duration_minutes for s in sessions),
        "total_pages": sum(s.pages_read for s in sessions),
        "average_session_minutes": _mean((s.duration_minutes for s in sessions), 1),
        "average_pages_per_session": _mean((s.pages_read for s in sessions), 1),
        "most_read_genre": _most_read(sessions, key=lambda b: b.genre, label=lambda b: b.genre),
        "longest_read_book": _most_read(sessions, key=lambda b: b.id, label=lambda b: b.title),
        "current_streak": streaks.current,
        "longest_streak": streaks.longest,
    }
