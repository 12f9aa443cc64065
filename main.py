import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import models
from config import settings
from database import Base, SessionLocal, engine
from errors import LibraryError, Unauthorized
from schemas import (BookCreate, BookOut, BookUpdate, FavoriteCreate, FavoriteNoteUpdate,
                     FavoriteOut, ReadingHistoryOut, ReadingSessionCreate)
from services import analytics, books, favorites, sessions
from services.etl import import_library_csv

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Shelf Analytics API")

# create tables once at startup
Base.metadata.create_all(bind=engine)

def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user_id(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> str:
    # identity is established upstream; we only check it names a known user
    if not x_user_id:
        raise Unauthorized("User ID not found in request")
    if db.get(models.User, x_user_id) is None:
        raise Unauthorized("Unknown user")
    return x_user_id

@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

def _paginate_headers(response: Response, total: int, page: int, page_size: int):
    response.headers["X-Total-Count"] = str(total)
    response.headers["X-Page"] = str(page)
    response.headers["X-Page-Size"] = str(page_size)
    response.headers["X-Total-Pages"] = str(-(-total // page_size))

@app.get("/")
def health():
    return {"status": "ok"}


# --- analytics ---

@app.get("/analytics/advanced")
def advanced_analytics(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return analytics.get_advanced_analytics(db, user_id)

@app.get("/analytics/rating-trends")
def rating_trends(
    months: int = Query(settings.trend_months, ge=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return analytics.get_rating_trends(db, user_id, months=months)

@app.get("/analytics/genre-trends")
def genre_trends(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return analytics.get_genre_trends(db, user_id)

@app.get("/analytics/reading-history", response_model=list[ReadingHistoryOut])
def reading_history(
    response: Response,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    items, total = sessions.reading_history(db, user_id, page=page, page_size=page_size)
    _paginate_headers(response, total, page, page_size)
    return [ReadingHistoryOut.from_session(s) for s in items]

@app.post("/analytics/log-reading", response_model=ReadingHistoryOut, status_code=201)
def log_reading(
    body: ReadingSessionCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    session = sessions.log_reading_session(
        db, user_id, body.book_id,
        start_time=body.start_time,
        end_time=body.end_time,
        pages_read=body.pages_read,
        note=body.note,
    )
    return ReadingHistoryOut.from_session(session)


# --- books ---

@app.get("/books", response_model=list[BookOut])
def list_books(
    genre: Optional[str] = None,
    search: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return books.list_books(db, user_id, genre=genre, search=search)

@app.get("/books/genres")
def list_genres(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return books.list_genres(db, user_id)

@app.get("/books/{book_id}", response_model=BookOut)
def get_book(
    book_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return books.get_owned_book(db, user_id, book_id)

@app.post("/books", response_model=BookOut, status_code=201)
def create_book(
    body: BookCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return books.create_book(db, user_id, **body.model_dump())

@app.put("/books/{book_id}", response_model=BookOut)
def update_book(
    book_id: int,
    body: BookUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    fields = body.model_dump(exclude_unset=True, exclude={"version_token"})
    return books.update_book(db, user_id, book_id, fields, version_token=body.version_token)

@app.delete("/books/{book_id}", status_code=204)
def delete_book(
    book_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    books.delete_book(db, user_id, book_id)
    return Response(status_code=204)


# --- favorites ---

@app.get("/favorites", response_model=list[FavoriteOut])
def list_favorites(
    response: Response,
    genre: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    items, total = favorites.list_favorites(db, user_id, genre=genre, search=search,
                                            page=page, page_size=page_size)
    _paginate_headers(response, total, page, page_size)
    return items

@app.get("/favorites/popular")
def popular_books(
    limit: int = Query(10, ge=1, le=100),
    genre: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return favorites.popular_books(db, user_id, limit=limit, genre=genre)

@app.get("/favorites/check/{book_id}")
def check_favorite(
    book_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"is_favorite": favorites.is_favorited(db, user_id, book_id)}

@app.post("/favorites", response_model=FavoriteOut, status_code=201)
def add_favorite(
    body: FavoriteCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return favorites.add_favorite(db, user_id, body.book_id, note=body.note)

@app.delete("/favorites/{book_id}", status_code=204)
def remove_favorite(
    book_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    favorites.remove_favorite(db, user_id, book_id)
    return Response(status_code=204)

@app.put("/favorites/{book_id}/note", response_model=FavoriteOut)
def update_favorite_note(
    book_id: int,
    body: FavoriteNoteUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return favorites.update_note(db, user_id, book_id, body.note)


# --- import ---

@app.post("/import/library")
async def import_library(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not file.filename.endswith(".csv"):
        raise HTTPException(status_code=415, detail="upload a .csv file")
    content = await file.read()
    return import_library_csv(content, db, user_id)
