from datetime import datetime, timezone
from typing import Iterable, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from messaging.database.connection import next_sequence
from messaging.models.message import ReactionDocument


class ReactionRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["message_reactions"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("message_id", ASCENDING), ("user_id", ASCENDING), ("emoji", ASCENDING)],
            unique=True,
        )

    async def add(self, message_id: int, user_id: int, emoji: str) -> ReactionDocument:
        key = {"message_id": message_id, "user_id": user_id, "emoji": emoji}
        existing = await self.collection.find_one(key)
        if existing:
            return existing
        doc = {**key, "_id": await next_sequence(self._db, "message_reactions"), "created_at": datetime.now(timezone.utc)}
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError:
            # lost a race with an identical add
            return await self.collection.find_one(key)
        return doc

    async def remove(self, message_id: int, user_id: int, emoji: str) -> bool:
        result = await self.collection.delete_one({"message_id": message_id, "user_id": user_id, "emoji": emoji})
        return result.deleted_count > 0

    async def list_for_messages(self, message_ids: Iterable[int]) -> List[ReactionDocument]:
        ids = list(message_ids)
        if not ids:
            return []
        cur = self.collection.find({"message_id": {"$in": ids}}).sort("_id", ASCENDING)
        return await cur.to_list(length=None)
