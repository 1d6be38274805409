import logging
from collections import defaultdict
from typing import DefaultDict, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Open websocket connections in this process, keyed by user id.

    A user may hold several sockets at once (tabs, devices); every frame
    addressed to the user is written to each of them.
    """

    def __init__(self) -> None:
        self._sockets: DefaultDict[int, Set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        self._sockets[user_id].add(websocket)

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        sockets = self._sockets.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._sockets[user_id]

    def is_connected(self, user_id: int) -> bool:
        return bool(self._sockets.get(user_id))

    def connection_count(self, user_id: int) -> int:
        return len(self._sockets.get(user_id, ()))

    async def send_to_user(self, user_id: int, frame: str) -> int:
        """Write ``frame`` to every socket of ``user_id``; returns how many took it."""
        delivered = 0
        for websocket in list(self._sockets.get(user_id, ())):
            try:
                await websocket.send_text(frame)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Dropping dead connection for user %s: %s", user_id, exc)
                self.disconnect(user_id, websocket)
        return delivered


manager = ConnectionManager()
