import os

# keep the app's import-time engine off the working directory
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from datetime import date, datetime
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from database import Base, make_engine
from models import Book, User


@pytest.fixture
def session_factory(tmp_path):
    # file-backed so separate sessions get separate connections
    engine = make_engine(f"sqlite:///{tmp_path / 'library_test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(id="alice", name="Alice")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = User(id="bob", name="Bob")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_book(db):
    def _make(user_id, title="Dune", author="Frank Herbert", genre="Science Fiction",
              rating=4, created_at=None, is_deleted=False):
        created_at = created_at or datetime(2024, 3, 15, 12, 0)
        book = Book(user_id=user_id, title=title, author=author, genre=genre,
                    published_date=date(1965, 8, 1), rating=rating,
                    created_at=created_at, updated_at=created_at,
                    is_deleted=is_deleted)
        db.add(book)
        db.commit()
        return book
    return _make


@pytest.fixture
def client(session_factory, user):
    import main

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[main.get_db] = _get_db
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
