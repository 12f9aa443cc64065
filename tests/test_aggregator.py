from datetime import date, datetime
from types import SimpleNamespace

import pytest

from services import aggregator
from services.aggregator import round_half_up


def book(id, rating=4, genre="Fantasy", author="Ursula K. Le Guin",
         created_at=datetime(2024, 3, 15, 10, 0), title=None, is_deleted=False):
    return SimpleNamespace(id=id, rating=rating, genre=genre, author=author,
                           created_at=created_at, title=title or f"Book {id}",
                           is_deleted=is_deleted)


def session(b, minutes=30, start=datetime(2024, 3, 20, 20, 0), pages=10, book_id=None):
    return SimpleNamespace(book=b, book_id=book_id if b is None else b.id,
                           duration_minutes=minutes, start_time=start, pages_read=pages)


def test_round_half_up_goes_away_from_zero():
    assert round_half_up(2.125, 2) == 2.13
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.5, 0) == 3.0
    assert round_half_up(33.35, 1) == 33.4


def test_rating_trends_group_by_creation_month():
    books = [
        book(1, rating=5, created_at=datetime(2024, 3, 1)),
        book(2, rating=4, created_at=datetime(2024, 3, 31, 23, 59)),
        book(3, rating=2, created_at=datetime(2023, 11, 5)),
    ]
    trends = aggregator.rating_trends(books)
    assert [t["date"] for t in trends] == [date(2023, 11, 1), date(2024, 3, 1)]
    assert trends[1]["book_count"] == 2
    assert trends[1]["average_rating"] == 4.5


def test_rating_trends_never_synthesize_empty_months():
    books = [book(1, created_at=datetime(2024, 1, 2)), book(2, created_at=datetime(2024, 4, 2))]
    assert len(aggregator.rating_trends(books)) == 2


def test_rating_trends_window_keeps_most_recent_groups():
    books = [book(i, created_at=datetime(2024, i, 1)) for i in range(1, 7)]
    trends = aggregator.rating_trends(books, months=3)
    assert [t["date"].month for t in trends] == [4, 5, 6]


def test_rating_trend_average_uses_half_up_rounding():
    ratings = [2, 2, 2, 2, 2, 2, 2, 3]  # mean 2.125
    books = [book(i, rating=r) for i, r in enumerate(ratings)]
    assert aggregator.rating_trends(books)[0]["average_rating"] == 2.13


def test_rating_trend_average_within_rating_range():
    books = [book(i, rating=r, created_at=datetime(2024, 1 + i % 3, 1))
             for i, r in enumerate([1, 5, 3, 1, 1, 5, 2, 4, 5])]
    for t in aggregator.rating_trends(books):
        assert 1 <= t["average_rating"] <= 5


def test_genre_percentages_sum_to_hundred():
    books = [book(1, genre="Fantasy"), book(2, genre="History"), book(3, genre="Poetry"),
             book(4, genre="Fantasy"), book(5, genre="Poetry"), book(6, genre="Poetry")]
    trends = aggregator.genre_trends(books, [])
    total = sum(t["percentage"] for t in trends)
    assert total == pytest.approx(100, abs=0.05 * len(trends))


def test_genre_trends_ordered_by_count_desc():
    books = [book(1, genre="History"), book(2, genre="Poetry"), book(3, genre="Poetry")]
    trends = aggregator.genre_trends(books, [])
    assert [t["genre"] for t in trends] == ["Poetry", "History"]
    assert trends[0]["percentage"] == 66.7
    assert trends[1]["percentage"] == 33.3


def test_genre_grouping_is_case_sensitive():
    books = [book(1, genre="Fiction"), book(2, genre="fiction")]
    trends = aggregator.genre_trends(books, [])
    assert {t["genre"] for t in trends} == {"Fiction", "fiction"}
    assert all(t["count"] == 1 for t in trends)


def test_genre_minutes_skip_unknown_and_deleted_books():
    fantasy = book(1, genre="Fantasy")
    gone = book(2, genre="Fantasy", is_deleted=True)
    sessions = [session(fantasy, 40), session(None, 25, book_id=99), session(gone, 60)]
    trends = aggregator.genre_trends([fantasy], sessions)
    assert trends == [{
        "genre": "Fantasy",
        "count": 1,
        "percentage": 100.0,
        "average_rating": 4.0,
        "total_minutes_read": 40,
    }]


def test_genre_trends_empty_library():
    assert aggregator.genre_trends([], []) == []


def test_monthly_rollup_attributes_to_march():
    b = book(1, rating=5, created_at=datetime(2024, 3, 15))
    s = session(b, minutes=45, start=datetime(2024, 3, 20, 8, 0))
    rollup = aggregator.monthly_rollup([b], [s], now=datetime(2024, 5, 10), months=6)

    assert [(m["month"], m["year"]) for m in rollup] == [
        ("December", 2023), ("January", 2024), ("February", 2024),
        ("March", 2024), ("April", 2024), ("May", 2024),
    ]
    march = rollup[3]
    assert march["books_added"] == 1
    assert march["books_read"] == 1
    assert march["minutes_read"] == 45
    assert march["average_rating"] == 5.0


def test_monthly_rollup_counts_distinct_books_read():
    b = book(1, created_at=datetime(2023, 1, 1))
    sessions = [session(b, 10, start=datetime(2024, 5, d)) for d in (1, 2, 3)]
    current = aggregator.monthly_rollup([b], sessions, now=datetime(2024, 5, 31), months=1)
    assert current == [{
        "month": "May",
        "year": 2024,
        "books_added": 0,
        "books_read": 1,
        "minutes_read": 30,
        "average_rating": 0.0,
    }]


def test_top_authors_ranked_by_minutes_then_name():
    a = book(1, author="Borges")
    b = book(2, author="Austen")
    c = book(3, author="Calvino")
    sessions = [session(a, 30), session(b, 30), session(c, 90)]
    top = aggregator.top_authors([a, b, c], sessions, limit=2)
    assert [t["author"] for t in top] == ["Calvino", "Austen"]
    assert top[0]["total_minutes_read"] == 90
    assert top[0]["book_count"] == 1


def test_top_books_group_sessions_by_book():
    a = book(1)
    b = book(2)
    sessions = [session(a, 20), session(a, 25), session(b, 30), session(None, 500, book_id=7)]
    top = aggregator.top_books(sessions)
    assert [(t["book_id"], t["reading_sessions"], t["total_minutes_read"]) for t in top] == [
        (1, 2, 45), (2, 1, 30),
    ]


def test_overview_and_stats_without_data():
    now = datetime(2024, 6, 1)
    assert aggregator.overview([], [], 0, now)["average_rating"] == 0
    stats = aggregator.reading_stats([], now.date())
    assert stats["average_session_minutes"] == 0
    assert stats["most_read_genre"] == "N/A"
    assert stats["longest_read_book"] == "N/A"
    assert stats["current_streak"] == 0


def test_reading_stats_totals_and_streaks():
    b = book(1, genre="Poetry", title="Ariel")
    sessions = [
        session(b, 30, start=datetime(2024, 6, 14, 9), pages=12),
        session(b, 45, start=datetime(2024, 6, 15, 9), pages=20),
        session(None, 15, start=datetime(2024, 6, 15, 21), pages=5, book_id=9),
    ]
    stats = aggregator.reading_stats(sessions, date(2024, 6, 15))
    assert stats["total_sessions"] == 3
    assert stats["total_minutes"] == 90
    assert stats["total_pages"] == 37
    assert stats["average_session_minutes"] == 30.0
    assert stats["average_pages_per_session"] == 12.3
    assert stats["most_read_genre"] == "Poetry"
    assert stats["longest_read_book"] == "Ariel"
    assert stats["current_streak"] == 2
    assert stats["longest_streak"] == 2


def test_longest_read_book_keeps_same_titled_books_apart():
    first, second = book(1, title="Persuasion"), book(2, title="Persuasion")
    emma = book(3, title="Emma")
    sessions = [session(first, 30), session(second, 30), session(emma, 45)]
    stats = aggregator.reading_stats(sessions, date(2024, 3, 20))
    assert stats["longest_read_book"] == "Emma"
