from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from messaging.database.connection import next_sequence
from messaging.models.message import SuggestionDocument


class SuggestionRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["message_suggestions"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("message_id", ASCENDING), ("status", ASCENDING)])

    async def create_many(self, message_id: int, rows: Iterable[tuple]) -> List[SuggestionDocument]:
        now = datetime.now(timezone.utc)
        docs = []
        for suggestion_type, payload in rows:
            docs.append({
                "_id": await next_sequence(self._db, "message_suggestions"),
                "message_id": message_id,
                "type": suggestion_type,
                "payload": payload,
                "status": "pending",
                "accepted_payload": None,
                "created_at": now,
                "updated_at": now,
            })
        if docs:
            await self.collection.insert_many(docs)
        return docs

    async def get(self, message_id: int, suggestion_id: int) -> Optional[SuggestionDocument]:
        return await self.collection.find_one({"_id": suggestion_id, "message_id": message_id})

    async def list_for_messages(self, message_ids: Iterable[int]) -> List[SuggestionDocument]:
        ids = list(message_ids)
        if not ids:
            return []
        cur = self.collection.find({"message_id": {"$in": ids}}).sort("_id", ASCENDING)
        return await cur.to_list(length=None)

    async def message_ids_with_suggestions(self) -> List[int]:
        cur = self.collection.find({}, {"message_id": 1})
        return sorted({doc["message_id"] async for doc in cur})

    async def resolve(
        self,
        message_id: int,
        suggestion_id: int,
        status: str,
        accepted_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[SuggestionDocument]:
        """Move a pending suggestion to ``status``. Returns None if it was not pending."""
        fields: Dict[str, Any] = {"status": status, "updated_at": datetime.now(timezone.utc)}
        if accepted_payload is not None:
            fields["accepted_payload"] = accepted_payload
        return await self.collection.find_one_and_update(
            {"_id": suggestion_id, "message_id": message_id, "status": "pending"},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def reopen(self, message_id: int, suggestion_id: int) -> None:
        await self.collection.update_one(
            {"_id": suggestion_id, "message_id": message_id, "status": "accepted"},
            {"$set": {"status": "pending", "accepted_payload": None, "updated_at": datetime.now(timezone.utc)}},
        )
