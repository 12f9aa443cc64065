import sys
from datetime import date

from database import Base, SessionLocal, engine
from models import Book, User
from services.etl import import_library_csv

DEMO_USER = "demo"

SAMPLE_BOOKS = [
    ("The Pragmatic Programmer", "Andy Hunt, Dave Thomas", "Software", date(1999, 10, 30), 5),
    ("Clean Code", "Robert C. Martin", "Software", date(2008, 8, 1), 5),
    ("Design Patterns", "Gang of Four", "Software", date(1994, 10, 31), 4),
]

Base.metadata.create_all(bind=engine)
db = SessionLocal()
try:
    # only seed an empty database
    if db.query(User).count() == 0:
        db.add(User(id=DEMO_USER, name="Demo Reader"))
        for title, author, genre, published, rating in SAMPLE_BOOKS:
            db.add(Book(user_id=DEMO_USER, title=title, author=author, genre=genre,
                        published_date=published, rating=rating))
        db.commit()
    if len(sys.argv) > 1:
        with open(sys.argv[1], "rb") as f:
            print(import_library_csv(f.read(), db, DEMO_USER))
finally:
    db.close()
