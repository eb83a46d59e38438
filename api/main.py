# api/main.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from finder.exceptions import BookNotFound, NotificationNotFound
from finder.services import Services
from utils.log import get_logger
from .auth import get_caller, get_services
from .errors import Internal, InvalidArgument, NotFound, register_error_handlers
from .rate_limit import DEFAULT_LIMIT, SEARCH_LIMIT, limiter, register_rate_limit
from .schemas import BookCreate, SearchRequest, clean

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.services = Services.create()
    try:
        yield
    finally:
        await app.state.services.aclose()


app = FastAPI(title="Book Tracker API", version="1.0", lifespan=lifespan)

register_rate_limit(app)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


def dump(record):
    return record.model_dump(by_alias=True, mode="json")


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/search")
@limiter.limit(SEARCH_LIMIT)
async def search_book(
    request: Request,
    body: Optional[SearchRequest] = None,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    """
    Run one search across all sources for a title (and optional author).

    Read-only: nothing is persisted and the book's lastSearched is not
    touched.

    Returns:
        dict: ``results`` (list of listings) and ``searchedAt`` (ISO timestamp)

    Raises:
        Unauthenticated: missing or invalid credentials
        InvalidArgument: empty title
        Internal: the search itself failed
    """
    title = clean(body.title) if body else None
    if not title:
        raise InvalidArgument("Book title is required")
    author = clean(body.author)

    try:
        results = await services.aggregator.search(title, author)
    except Exception:
        logger.exception("Error in manual search")
        raise Internal("Search failed")

    return {
        "results": [dump(r) for r in results],
        "searchedAt": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/notifications")
@limiter.limit(DEFAULT_LIMIT)
async def list_notifications(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    try:
        notifications = await services.store.list_notifications(user_id, limit=limit)
    except Exception:
        logger.exception("Error listing notifications")
        raise Internal("Failed to fetch notifications")
    return {"results": [dump(n) for n in notifications]}


@app.get("/notifications/{notification_id}")
@limiter.limit(DEFAULT_LIMIT)
async def get_notification(
    request: Request,
    notification_id: str,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    """
    Fetch one of the caller's notifications.

    Raises:
        NotFound: unknown id, or the notification belongs to another user
        Internal: storage failure or a malformed stored record
    """
    try:
        notification = await services.store.get_notification(user_id, notification_id)
    except NotificationNotFound:
        raise NotFound("Notification not found")
    except Exception:
        logger.exception("Error fetching notification")
        raise Internal("Failed to fetch notification")
    return dump(notification)


@app.post("/notifications/{notification_id}/read")
@limiter.limit(DEFAULT_LIMIT)
async def mark_notification_read(
    request: Request,
    notification_id: str,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    """Mark one of the caller's notifications as read."""
    if not notification_id.strip():
        raise InvalidArgument("Notification id is required")
    try:
        await services.store.mark_notification_read(user_id, notification_id)
    except NotificationNotFound:
        raise NotFound("Notification not found")
    except Exception:
        logger.exception("Error marking notification as read")
        raise Internal("Failed to update notification")
    return {"success": True}


@app.get("/books")
@limiter.limit(DEFAULT_LIMIT)
async def list_books(
    request: Request,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    try:
        books = await services.store.list_user_books(user_id)
    except Exception:
        logger.exception("Error listing books")
        raise Internal("Failed to fetch books")
    return {"results": [dump(b) for b in books]}


@app.post("/books", status_code=201)
@limiter.limit(DEFAULT_LIMIT)
async def add_book(
    request: Request,
    body: Optional[BookCreate] = None,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    title = clean(body.title) if body else None
    if not title:
        raise InvalidArgument("Book title is required")
    try:
        book = await services.store.add_book(user_id, title, clean(body.author))
    except Exception:
        logger.exception("Error adding book")
        raise Internal("Failed to add book")
    return dump(book)


@app.delete("/books/{book_id}")
@limiter.limit(DEFAULT_LIMIT)
async def remove_book(
    request: Request,
    book_id: str,
    user_id: str = Depends(get_caller),
    services=Depends(get_services),
):
    try:
        await services.store.remove_book(user_id, book_id)
    except BookNotFound:
        raise NotFound("Book not found")
    except Exception:
        logger.exception("Error removing book")
        raise Internal("Failed to remove book")
    return {"success": True}


# Run uvicorn externally or here
if __name__ == "__main__":
    import uvicorn

    from utils.config import Settings

    uvicorn.run("api.main:app", host="0.0.0.0", port=Settings.from_env().api_port)
