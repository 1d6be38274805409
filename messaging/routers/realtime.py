import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from messaging.database.connection import mongo_db_dependency
from messaging.errors import AuthenticationError, MessagingError
from messaging.schemas.events import TransportEvent
from messaging.services.conversation_service import ConversationService
from messaging.services.events import EventPublisher
from messaging.utils.dependencies import get_conversation_service, get_event_publisher, resolve_user
from messaging.utils.realtime_bus import get_bus
from messaging.utils.websocket_manager import manager

logger = logging.getLogger(__name__)


router = APIRouter(tags=["realtime"])

TYPING_EVENTS = ("typing.started", "typing.stopped")
CALL_RELAY_EVENTS = ("call.offer", "call.answer", "call.ice")
PRESENCE_TTL = 60
PRESENCE_REFRESH = 30


async def _presence_heartbeat(bus, user_id: int) -> None:
    while True:
        try:
            await bus.set_presence(user_id, ttl_seconds=PRESENCE_TTL)
        except RedisError as exc:
            logger.warning("Presence heartbeat for user %s failed: %s", user_id, exc)
        await asyncio.sleep(PRESENCE_REFRESH)


def _field(event: TransportEvent, data: Dict[str, Any], name: str) -> Any:
    # clients put routing fields either inside data or beside it
    if name in data:
        return data[name]
    return (event.model_extra or {}).get(name)


async def handle_frame(user_id: int, raw: str, conversations: ConversationService, events: EventPublisher) -> None:
    try:
        event = TransportEvent.model_validate_json(raw)
    except PydanticValidationError:
        logger.debug("Dropping malformed frame from user %s", user_id)
        return
    conversation_id = event.conversation_id
    if conversation_id is None:
        return
    if not await conversations.is_member(conversation_id, user_id):
        return
    data = event.data if isinstance(event.data, dict) else {}

    if event.type in TYPING_EVENTS:
        await events.broadcast(conversation_id, event.type, {"user_id": user_id}, exclude_user=user_id)
    elif event.type == "read.updated":
        message_id = _field(event, data, "last_read_message_id")
        if isinstance(message_id, int) and message_id > 0:
            try:
                await conversations.mark_read(user_id, conversation_id, message_id)
            except MessagingError as exc:
                logger.debug("Ignoring read update from user %s: %s", user_id, exc.message)
    elif event.type in CALL_RELAY_EVENTS:
        target = _field(event, data, "target_user_id")
        if isinstance(target, int) and await conversations.is_member(conversation_id, target):
            relay = TransportEvent.build(event.type, conversation_id, {**data, "from_user_id": user_id})
            await events.send_to_user(target, relay)
    elif event.type == "call.hangup":
        await events.broadcast(conversation_id, event.type, {**data, "from_user_id": user_id}, exclude_user=user_id)
    else:
        logger.debug("Ignoring %s frame from user %s", event.type, user_id)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    db=Depends(mongo_db_dependency),
    conversations: ConversationService = Depends(get_conversation_service),
    events: EventPublisher = Depends(get_event_publisher),
):
    token = websocket.query_params.get("token")
    try:
        user = await resolve_user(db, token)
    except AuthenticationError:
        await websocket.close(code=4401)
        return
    user_id = user["id"]

    await manager.connect(user_id, websocket)
    bus = await get_bus()
    subscriber = None
    tasks = []
    if getattr(bus, "enabled", False):
        subscriber = await bus.subscribe(f"user:{user_id}", websocket.send_text)
        tasks.append(asyncio.create_task(subscriber.run()))
        tasks.append(asyncio.create_task(_presence_heartbeat(bus, user_id)))
    logger.info("User %s connected", user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_frame(user_id, raw, conversations, events)
    except WebSocketDisconnect:
        logger.info("User %s disconnected", user_id)
    finally:
        manager.disconnect(user_id, websocket)
        for task in tasks:
            task.cancel()
        if subscriber is not None:
            await subscriber.cancel()
