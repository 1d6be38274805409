from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from messaging.database.connection import next_sequence
from messaging.models.conversation import ConversationDocument, ConversationMemberDocument


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    @property
    def members(self):
        return self._db["conversation_members"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("type", ASCENDING), ("created_by", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])
        await self.members.create_index([("conversation_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
        await self.members.create_index([("user_id", ASCENDING)])

    async def create(
        self,
        type: str,
        name: str,
        created_by: int,
        topic: Optional[str] = None,
        team_id: Optional[int] = None,
        is_default: bool = False,
    ) -> ConversationDocument:
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "_id": await next_sequence(self._db, "conversations"),
            "type": type,
            "name": name,
            "topic": topic or None,
            "team_id": team_id,
            "created_by": created_by,
            "is_default": is_default,
            "is_archived": False,
            "last_message_at": now,
            "created_at": now,
            "updated_at": now,
        }
        await self.collection.insert_one(doc)
        return doc

    async def get(self, conversation_id: int) -> Optional[ConversationDocument]:
        return await self.collection.find_one({"_id": conversation_id})

    async def find_owned(self, type: str, created_by: int) -> Optional[ConversationDocument]:
        return await self.collection.find_one({"type": type, "created_by": created_by})

    async def find_global(self, name: str) -> Optional[ConversationDocument]:
        return await self.collection.find_one({"type": "global", "name": name})

    async def find_dm(self, user_a: int, user_b: int) -> Optional[ConversationDocument]:
        own = await self.members.find({"user_id": user_a}, {"conversation_id": 1}).to_list(length=None)
        candidate_ids = [m["conversation_id"] for m in own]
        if not candidate_ids:
            return None
        cursor = self.collection.find({"_id": {"$in": candidate_ids}, "type": "dm"})
        async for convo in cursor:
            ids = await self.list_member_ids(convo["_id"])
            if sorted(ids) == sorted([user_a, user_b]):
                return convo
        return None

    async def list_by_ids(self, conversation_ids: Iterable[int]) -> List[ConversationDocument]:
        ids = list(conversation_ids)
        if not ids:
            return []
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        return await self.collection.find({"_id": {"$in": ids}}).sort(sort).to_list(length=None)

    async def update_fields(self, conversation_id: int, fields: Dict[str, Any]) -> Optional[ConversationDocument]:
        fields = {**fields, "updated_at": datetime.now(timezone.utc)}
        return await self.collection.find_one_and_update(
            {"_id": conversation_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def touch_last_message(self, conversation_id: int, at: datetime) -> None:
        await self.collection.update_one({"_id": conversation_id}, {"$max": {"last_message_at": at}})

    # ---- membership ---------------------------------------------------------

    async def add_member(self, conversation_id: int, user_id: int, role: str = "member") -> ConversationMemberDocument:
        # an existing membership keeps its role
        now = datetime.now(timezone.utc)
        await self.members.update_one(
            {"conversation_id": conversation_id, "user_id": user_id},
            {
                "$setOnInsert": {
                    "role": role,
                    "joined_at": now,
                    "last_read_message_id": None,
                    "last_read_at": None,
                    "muted_until": None,
                    "is_hidden": False,
                }
            },
            upsert=True,
        )
        return await self.get_membership(conversation_id, user_id)

    async def add_members(self, conversation_id: int, user_ids: Iterable[int], role: str = "member") -> None:
        for user_id in user_ids:
            await self.add_member(conversation_id, user_id, role)

    async def remove_member(self, conversation_id: int, user_id: int) -> bool:
        result = await self.members.delete_one({"conversation_id": conversation_id, "user_id": user_id})
        return result.deleted_count > 0

    async def get_membership(self, conversation_id: int, user_id: int) -> Optional[ConversationMemberDocument]:
        return await self.members.find_one({"conversation_id": conversation_id, "user_id": user_id})

    async def list_members(self, conversation_id: int) -> List[ConversationMemberDocument]:
        cur = self.members.find({"conversation_id": conversation_id}).sort("joined_at", ASCENDING)
        return await cur.to_list(length=None)

    async def list_member_ids(self, conversation_id: int) -> List[int]:
        cur = self.members.find({"conversation_id": conversation_id}, {"user_id": 1})
        return [m["user_id"] async for m in cur]

    async def list_memberships_for_user(self, user_id: int, include_hidden: bool = True) -> List[ConversationMemberDocument]:
        query: Dict[str, Any] = {"user_id": user_id}
        if not include_hidden:
            query["is_hidden"] = {"$ne": True}
        return await self.members.find(query).to_list(length=None)

    async def advance_read(self, conversation_id: int, user_id: int, message_id: int) -> bool:
        """Move the watermark forward; a lower or equal id leaves it untouched."""
        result = await self.members.update_one(
            {
                "conversation_id": conversation_id,
                "user_id": user_id,
                "$or": [
                    {"last_read_message_id": None},
                    {"last_read_message_id": {"$lt": message_id}},
                ],
            },
            {"$set": {"last_read_message_id": message_id, "last_read_at": datetime.now(timezone.utc)}},
        )
        return bool(result.modified_count)

    async def update_membership(self, conversation_id: int, user_id: int, fields: Dict[str, Any]) -> Optional[ConversationMemberDocument]:
        return await self.members.find_one_and_update(
            {"conversation_id": conversation_id, "user_id": user_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
