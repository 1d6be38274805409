from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from messaging.models.device import DeviceDocument


class DeviceRepository:
    """Push tokens per user. A token belongs to one user at a time."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["devices"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("platform", ASCENDING), ("token", ASCENDING)], unique=True)
        await self.collection.create_index("user_id")

    async def register(self, user_id: int, platform: str, token: str) -> DeviceDocument:
        # re-registering a token on another account moves it
        return await self.collection.find_one_and_update(
            {"platform": platform, "token": token},
            {"$set": {"user_id": user_id, "last_seen_at": datetime.now(timezone.utc)}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def unregister(self, user_id: int, token: str) -> bool:
        result = await self.collection.delete_many({"user_id": user_id, "token": token})
        return result.deleted_count > 0

    async def tokens_for(self, user_ids: Iterable[int], platform: Optional[str] = None) -> List[str]:
        query: Dict[str, Any] = {"user_id": {"$in": list(user_ids)}}
        if platform:
            query["platform"] = platform
        return [doc["token"] async for doc in self.collection.find(query, {"token": 1})]
