"""Time entry repository - port and MongoDB adapter."""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import AsyncIterator, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.errors import StorageError
from app.models.time_entry import TimeEntry
from app.utils.mongo import parse_object_id, to_decimal, to_storage

logger = logging.getLogger(__name__)


class EntryRepository(ABC):
    """Storage operations the timer and valuation services rely on."""

    @abstractmethod
    def subscribe(self, user_id: str) -> AsyncIterator[list[TimeEntry]]:
        """Yield the user's full entry set now and again after every change."""

    @abstractmethod
    async def get(self, entry_id: str) -> Optional[TimeEntry]:
        """Fetch one entry, or None."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[TimeEntry]:
        """All entries owned by a user, newest billing day first."""

    @abstractmethod
    async def list_for_project(self, project_id: str) -> list[TimeEntry]:
        """All entries booked on a project, regardless of owner."""

    @abstractmethod
    async def create(self, fields: dict) -> TimeEntry:
        """Insert a new entry and return it with its assigned ID."""

    @abstractmethod
    async def patch(
        self, entry_id: str, fields: dict, match: Optional[dict] = None
    ) -> Optional[TimeEntry]:
        """
        Partially update an entry; always stamps ``updated_at``.

        With ``match``, the write only applies while the stored entry still
        has those field values. Returns None when nothing was written.
        """

    @abstractmethod
    async def remove(self, entry_id: str) -> bool:
        """Delete an entry. Returns False if it did not exist."""


class MongoEntryRepository(EntryRepository):
    """Entry repository backed by the ``time_entries`` collection."""

    def __init__(self, db):
        """Initialize repository with database connection."""
        self.db = db
        self.time_entries = db["time_entries"]

    def _doc_to_entry(self, doc: dict) -> TimeEntry:
        """
        Convert database document to TimeEntry model.

        Handles Decimal128 amounts and datetime to date conversion.
        """
        return TimeEntry(
            _id=str(doc["_id"]),
            user_id=doc["user_id"],
            project_id=doc["project_id"],
            task_id=doc.get("task_id", ""),
            price_item_id=doc.get("price_item_id", ""),
            hours=to_decimal(doc.get("hours")),
            hourly_rate=to_decimal(doc["hourly_rate"]) if doc.get("hourly_rate") is not None else None,
            note=doc.get("note", ""),
            date=doc["date"].date() if isinstance(doc["date"], datetime) else doc["date"],
            is_active=doc.get("is_active", False),
            timer_started_at=doc.get("timer_started_at"),
            timer_seconds=doc.get("timer_seconds", 0),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    async def _find(self, query: dict) -> list[TimeEntry]:
        try:
            cursor = self.time_entries.find(query).sort([("date", -1), ("created_at", -1)])
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to query time entries %s: %s", query, e)
            raise StorageError(str(e)) from e
        return [self._doc_to_entry(doc) for doc in docs]

    async def get(self, entry_id: str) -> Optional[TimeEntry]:
        object_id = parse_object_id(entry_id)
        if object_id is None:
            return None

        try:
            doc = await self.time_entries.find_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to load time entry %s: %s", entry_id, e)
            raise StorageError(str(e)) from e

        return self._doc_to_entry(doc) if doc else None

    async def list_for_user(self, user_id: str) -> list[TimeEntry]:
        return await self._find({"user_id": user_id})

    async def list_for_project(self, project_id: str) -> list[TimeEntry]:
        return await self._find({"project_id": project_id})

    async def subscribe(self, user_id: str) -> AsyncIterator[list[TimeEntry]]:
        """
        Live query over a user's entries.

        Yields the current snapshot, then a fresh snapshot after every
        change stream event that may affect the user. Deletes carry no
        document, so a delete only triggers a refresh when its ID was part
        of the last snapshot. Each call opens its
        own change stream, so a consumer restarts by calling again.
        """
        snapshot = await self.list_for_user(user_id)
        known_ids = {entry.id for entry in snapshot}
        yield snapshot

        pipeline = [{
            "$match": {
                "$or": [
                    {"fullDocument.user_id": user_id},
                    {"operationType": "delete"},
                ],
            },
        }]
        try:
            async with self.time_entries.watch(pipeline, full_document="updateLookup") as stream:
                async for change in stream:
                    if change.get("operationType") == "delete":
                        deleted_id = change.get("documentKey", {}).get("_id")
                        if str(deleted_id) not in known_ids:
                            continue
                    snapshot = await self.list_for_user(user_id)
                    known_ids = {entry.id for entry in snapshot}
                    yield snapshot
        except PyMongoError as e:
            logger.error("Time entry subscription for %s ended: %s", user_id, e)
            raise StorageError(str(e)) from e

    async def create(self, fields: dict) -> TimeEntry:
        now = datetime.utcnow()
        entry_doc = to_storage(fields)
        entry_doc.setdefault("created_at", now)
        entry_doc.setdefault("updated_at", now)

        try:
            result = await self.time_entries.insert_one(entry_doc)
        except PyMongoError as e:
            logger.error("Failed to create time entry: %s", e)
            raise StorageError(str(e)) from e

        entry_doc["_id"] = result.inserted_id
        return self._doc_to_entry(entry_doc)

    async def patch(
        self, entry_id: str, fields: dict, match: Optional[dict] = None
    ) -> Optional[TimeEntry]:
        object_id = parse_object_id(entry_id)
        if object_id is None:
            return None

        update_doc = to_storage(fields)
        update_doc["updated_at"] = datetime.utcnow()

        try:
            updated_doc = await self.time_entries.find_one_and_update(
                {"_id": object_id, **(match or {})},
                {"$set": update_doc},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Failed to update time entry %s: %s", entry_id, e)
            raise StorageError(str(e)) from e

        return self._doc_to_entry(updated_doc) if updated_doc else None

    async def remove(self, entry_id: str) -> bool:
        object_id = parse_object_id(entry_id)
        if object_id is None:
            return False

        try:
            result = await self.time_entries.delete_one({"_id": object_id})
        except PyMongoError as e:
            logger.error("Failed to delete time entry %s: %s", entry_id, e)
            raise StorageError(str(e)) from e

        return result.deleted_count > 0
