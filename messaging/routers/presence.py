import logging

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from messaging.utils.dependencies import get_current_user
from messaging.utils.realtime_bus import get_bus
from messaging.utils.websocket_manager import manager

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/presence", tags=["realtime"])


@router.get("/{user_id}")
async def presence(user_id: int, current_user: dict = Depends(get_current_user)):
    """
    Online if this process holds a socket for the user, or Redis still has a
    fresh presence key for them.
    """
    online = manager.is_connected(user_id)
    if not online:
        bus = await get_bus()
        try:
            online = await bus.is_online(user_id)
        except RedisError as exc:
            logger.warning("Presence lookup for user %s failed: %s", user_id, exc)
            online = False
    return {"user_id": user_id, "online": bool(online)}
