from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from messaging.database.connection import next_sequence
from messaging.models.vault import VaultItemDocument


class VaultRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["vault_items"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("owner_user_id", ASCENDING)])
        await self.collection.create_index([("share_targets", ASCENDING)])

    async def create(
        self,
        owner_user_id: int,
        label: str,
        encrypted_secret: str,
        encrypted_notes: str = "",
        source_message_id: Optional[int] = None,
        allow_reveal: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> VaultItemDocument:
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "_id": await next_sequence(self._db, "vault_items"),
            "owner_user_id": owner_user_id,
            "label": label,
            "encrypted_secret": encrypted_secret,
            "encrypted_notes": encrypted_notes,
            "source_message_id": source_message_id,
            "allow_reveal": allow_reveal,
            "expires_at": expires_at,
            "share_targets": [],
            "last_accessed_at": None,
            "created_by": owner_user_id,
            "created_at": now,
            "updated_at": now,
        }
        await self.collection.insert_one(doc)
        return doc

    async def get(self, item_id: int) -> Optional[VaultItemDocument]:
        return await self.collection.find_one({"_id": item_id})

    async def list_owned(self, user_id: int) -> List[VaultItemDocument]:
        return await self.collection.find({"owner_user_id": user_id}).sort("_id", ASCENDING).to_list(length=None)

    async def list_shared_into(self, conversation_ids: Iterable[int], exclude_owner: int) -> List[VaultItemDocument]:
        ids = list(conversation_ids)
        if not ids:
            return []
        query = {"share_targets": {"$in": ids}, "owner_user_id": {"$ne": exclude_owner}}
        return await self.collection.find(query).sort("_id", ASCENDING).to_list(length=None)

    async def add_share(self, item_id: int, conversation_id: int, policy: Dict[str, Any]) -> Optional[VaultItemDocument]:
        # pull then push keeps the latest target at the end of the list
        await self.collection.update_one({"_id": item_id}, {"$pull": {"share_targets": conversation_id}})
        return await self.collection.find_one_and_update(
            {"_id": item_id},
            {
                "$push": {"share_targets": conversation_id},
                "$set": {**policy, "updated_at": datetime.now(timezone.utc)},
            },
            return_document=ReturnDocument.AFTER,
        )

    async def remove_share(self, item_id: int, conversation_id: Optional[int] = None) -> Optional[VaultItemDocument]:
        if conversation_id is None:
            update: Dict[str, Any] = {"$set": {"share_targets": []}}
        else:
            update = {"$pull": {"share_targets": conversation_id}}
        return await self.collection.find_one_and_update(
            {"_id": item_id}, update, return_document=ReturnDocument.AFTER
        )

    async def touch_accessed(self, item_id: int) -> None:
        await self.collection.update_one({"_id": item_id}, {"$set": {"last_accessed_at": datetime.now(timezone.utc)}})
