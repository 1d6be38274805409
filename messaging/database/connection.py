import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from starlette.requests import HTTPConnection

from messaging.config import get_settings

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    global _client, _db
    settings = get_settings()
    _client = AsyncIOMotorClient(settings.mongo_url, tz_aware=True)
    _db = _client[settings.mongo_db]
    logger.info("Connected to MongoDB database %s", settings.mongo_db)
    return _db


async def close_mongo_connection() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("MongoDB is not connected")
    return _db


def mongo_db_dependency(connection: HTTPConnection) -> AsyncIOMotorDatabase:
    # Works for both HTTP requests and websockets.
    db = getattr(connection.app.state, "database", None)
    if db is not None:
        return db
    return get_database()


async def next_sequence(db: AsyncIOMotorDatabase, name: str) -> int:
    """Allocate the next integer id for ``name``; ids only ever grow."""
    doc = await db["counters"].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["value"])
