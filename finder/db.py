# finder/db.py
from datetime import datetime, timezone

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient

from utils.log import get_logger
from .exceptions import BookNotFound, DecodeError, NotificationNotFound
from .models import Book, Notification, User, notification_document

logger = get_logger("store")


def _utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(ObjectId())


class Store:
    """
    Access to the users, books and notifications collections.

    ``db`` is a Motor database (or anything with the same collection API).
    When ``client`` is given, multi-document writes run inside a transaction
    on that client; otherwise they fall back to a single ordered bulk call.
    """

    def __init__(self, db, client=None, clock=None):
        self.db = db
        self.client = client
        self._now = clock or _utcnow
        self._owned_client = None

    @classmethod
    def connect(cls, settings):
        client = AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)
        store = cls(
            client[settings.mongo_db],
            client=client if settings.mongo_transactions else None,
        )
        store._owned_client = client
        return store

    def close(self):
        if self._owned_client is not None:
            self._owned_client.close()
            self._owned_client = None

    async def _atomic(self, op):
        if self.client is None:
            return await op(None)
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                return await op(session)

    @staticmethod
    def _decode_all(model, docs):
        records = []
        for doc in docs:
            try:
                records.append(model.from_document(doc))
            except DecodeError as e:
                logger.error(f"Skipping stored record: {e}")
        return records

    # users

    async def list_notifying_users(self):
        """Users that opted in to notifications."""
        docs = await self.db.users.find({"notifications": True}).to_list(length=None)
        return self._decode_all(User, docs)

    # books

    async def list_user_books(self, user_id):
        """A user's tracked books, most recently added first."""
        cursor = self.db.books.find({"userId": user_id}).sort([("addedDate", -1)])
        docs = await cursor.to_list(length=None)
        return self._decode_all(Book, docs)

    async def add_book(self, user_id, title, author=None):
        """
        Add a book to a user's tracked list.

        Args:
            user_id (str): Owner of the book
            title (str): Book title, already cleaned by the caller
            author (str, optional): Author, or None

        Returns:
            Book: The stored book, dated today by the store clock. It has no
                lastSearched yet, so the next daily run searches it.
        """
        doc = {
            "_id": new_id(),
            "title": title,
            "author": author,
            "userId": user_id,
            "addedDate": self._now().date().isoformat(),
        }
        await self.db.books.insert_one(doc)
        return Book.from_document(doc)

    async def remove_book(self, user_id, book_id):
        """
        Stop tracking a book.

        Raises:
            BookNotFound: No book with this id belongs to ``user_id``
        """
        res = await self.db.books.delete_one({"_id": book_id, "userId": user_id})
        if res.deleted_count == 0:
            raise BookNotFound(book_id)

    async def mark_searched(self, book_id, when):
        """
        Record that a book was searched at ``when``.

        The daily job skips the book until the research interval has passed
        since this timestamp.

        Args:
            book_id (str): Book to stamp
            when (datetime): Timezone-aware search time, stored as ISO text
        """
        await self.db.books.update_one(
            {"_id": book_id}, {"$set": {"lastSearched": when.isoformat()}}
        )

    # notifications

    async def save_notifications(self, user_id, book_title, results):
        """
        Persist one notification per result as a single atomic batch.

        Every document is stamped with the same ``createdAt`` from the store
        clock and starts unread.

        Args:
            user_id (str): Recipient of the notifications
            book_title (str): Title of the tracked book the results belong to
            results (list[SearchResult]): Listings found for that book

        Returns:
            list[str]: The new notification ids in result order (empty when
                there were no results)

        Note:
            Either all documents are written or none are. A failure
            propagates to the caller.
        """
        now = self._now()
        docs = []
        for r in results:
            doc = notification_document(user_id, book_title, r, now)
            doc["_id"] = new_id()
            docs.append(doc)
        if not docs:
            return []

        async def write(session):
            await self.db.notifications.insert_many(docs, ordered=True, session=session)

        await self._atomic(write)
        logger.info(f"Saved {len(docs)} notifications for user {user_id}")
        return [d["_id"] for d in docs]

    async def get_notification(self, user_id, notification_id):
        """
        Fetch one of a user's notifications.

        Raises:
            NotificationNotFound: The id is unknown or belongs to someone else
            DecodeError: The stored document is malformed
        """
        doc = await self.db.notifications.find_one({"_id": notification_id, "userId": user_id})
        if doc is None:
            raise NotificationNotFound(notification_id)
        return Notification.from_document(doc)

    async def list_notifications(self, user_id, limit=100):
        """A user's notifications, newest first, at most ``limit`` of them."""
        cursor = (
            self.db.notifications.find({"userId": user_id})
            .sort([("createdAt", -1)])
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return self._decode_all(Notification, docs)

    async def mark_notification_read(self, user_id, notification_id):
        """
        Flag a notification as read and stamp ``readAt``.

        Marking an already-read notification again succeeds and only moves
        ``readAt``.

        Raises:
            NotificationNotFound: The id is unknown or belongs to someone else
        """
        res = await self.db.notifications.update_one(
            {"_id": notification_id, "userId": user_id},
            {"$set": {"read": True, "readAt": self._now()}},
        )
        if res.matched_count == 0:
            raise NotificationNotFound(notification_id)

    async def delete_expired_notifications(self, cutoff, limit=500):
        """
        Delete up to ``limit`` notifications created before ``cutoff``.

        The ids are selected first and removed in one atomic delete; anything
        past the limit stays until the next call.
        """
        cursor = self.db.notifications.find(
            {"createdAt": {"$lt": cutoff}}, {"_id": 1}
        ).limit(limit)
        docs = await cursor.to_list(length=limit)
        ids = [d["_id"] for d in docs]
        if not ids:
            return 0

        async def delete(session):
            res = await self.db.notifications.delete_many(
                {"_id": {"$in": ids}}, session=session
            )
            return res.deleted_count

        return await self._atomic(delete)
