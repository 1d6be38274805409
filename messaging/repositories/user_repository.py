from typing import Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from messaging.models.user import UserDocument


class UserRepository:
    """Read-only view over the users collection owned by the auth service."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db["users"]

    async def get_user_by_id(self, user_id: int) -> Optional[UserDocument]:

        user = await self._collection.find_one({"_id": user_id})
        if user:
            user["id"] = user["_id"]
        return user

    async def users_exist(self, user_ids: Iterable[int]) -> bool:
        ids = list(set(user_ids))
        if not ids:
            return True
        count = await self._collection.count_documents({"_id": {"$in": ids}})
        return count == len(ids)

    async def list_user_ids(self) -> List[int]:
        return [doc["_id"] async for doc in self._collection.find({}, {"_id": 1})]
