from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from messaging.database.connection import next_sequence
from messaging.models.message import MessageDocument, ReferenceDocument


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("_id", DESCENDING)])
        await self.collection.create_index([("sender_id", ASCENDING)])

    async def save_message(
        self,
        conversation_id: int,
        sender_id: int,
        body: str,
        is_sensitive: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
        references: Optional[List[Dict[str, Any]]] = None,
    ) -> MessageDocument:
        now = datetime.now(timezone.utc)
        message_id = await next_sequence(self._db, "messages")
        attachment_rows = []
        for att in attachments or []:
            attachment_rows.append({**att, "id": await next_sequence(self._db, "message_attachments"), "message_id": message_id})
        reference_rows = []
        for ref in references or []:
            reference_rows.append({**ref, "id": await next_sequence(self._db, "message_references"), "message_id": message_id})
        doc: Dict[str, Any] = {
            "_id": message_id,
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "body": body,
            "is_sensitive": is_sensitive,
            "edited_at": None,
            "deleted_at": None,
            "metadata": metadata or {},
            "attachments": attachment_rows,
            "references": reference_rows,
            "created_at": now,
            "updated_at": now,
        }
        await self.collection.insert_one(doc)
        return doc

    async def get(self, message_id: int) -> Optional[MessageDocument]:
        return await self.collection.find_one({"_id": message_id})

    async def get_messages_by_conversation(
        self,
        conversation_id: int,
        limit: int = 50,
        cursor: Optional[int] = None,
    ) -> Tuple[List[MessageDocument], Optional[int]]:
        """Newest-first page strictly older than ``cursor``; next cursor only when more history exists."""
        query: Dict[str, Any] = {"conversation_id": conversation_id}
        if cursor:
            query["_id"] = {"$lt": cursor}
        cur = self.collection.find(query).sort("_id", DESCENDING).limit(limit + 1)
        items = await cur.to_list(length=limit + 1)
        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            next_cursor = items[-1]["_id"]
        return items, next_cursor

    async def latest_visible(self, conversation_id: int) -> Optional[MessageDocument]:
        cur = self.collection.find({"conversation_id": conversation_id, "deleted_at": None}).sort("_id", DESCENDING).limit(1)
        items = await cur.to_list(length=1)
        return items[0] if items else None

    async def count_unread(self, conversation_id: int, user_id: int, after_id: Optional[int]) -> int:
        query: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "deleted_at": None,
            "sender_id": {"$ne": user_id},
        }
        if after_id:
            query["_id"] = {"$gt": after_id}
        return await self.collection.count_documents(query)

    async def update_message(self, message_id: int, fields: Dict[str, Any]) -> Optional[MessageDocument]:
        fields = {**fields, "updated_at": datetime.now(timezone.utc)}
        return await self.collection.find_one_and_update(
            {"_id": message_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def soft_delete(self, message_id: int) -> Optional[MessageDocument]:
        now = datetime.now(timezone.utc)
        return await self.update_message(message_id, {"deleted_at": now})

    async def append_reference(self, message_id: int, entity_type: str, entity_id: int, deep_link: str) -> ReferenceDocument:
        ref = {
            "id": await next_sequence(self._db, "message_references"),
            "message_id": message_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "deep_link": deep_link,
        }
        await self.collection.update_one({"_id": message_id}, {"$push": {"references": ref}})
        return ref

    async def search(self, query: Dict[str, Any], offset: int, limit: int) -> Tuple[List[MessageDocument], int]:
        total = await self.collection.count_documents(query)
        cur = self.collection.find(query).sort("_id", DESCENDING).skip(offset).limit(limit)
        items = await cur.to_list(length=limit)
        return items, total
