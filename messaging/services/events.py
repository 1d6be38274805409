import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from redis.exceptions import RedisError

from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.device_repository import DeviceRepository
from messaging.schemas.events import TransportEvent
from messaging.services.serializers import as_utc
from messaging.utils.notifications import get_push
from messaging.utils.realtime_bus import get_bus
from messaging.utils.websocket_manager import ConnectionManager, manager

logger = logging.getLogger(__name__)


class EventPublisher:
    """Fans transport events out to every member of a conversation."""

    def __init__(self, conversation_repo: ConversationRepository, connections: ConnectionManager = manager) -> None:
        self._conversation_repo = conversation_repo
        self._connections = connections

    async def send_to_user(self, user_id: int, event: TransportEvent) -> None:
        payload = event.to_json()
        bus = await get_bus()
        if getattr(bus, "enabled", False):
            try:
                await bus.publish(f"user:{user_id}", payload)
            except RedisError as exc:
                logger.warning("Publishing %s to user %s failed: %s", event.type, user_id, exc)
            return
        await self._connections.send_to_user(user_id, payload)

    async def broadcast(
        self,
        conversation_id: int,
        event_type: str,
        data: Any = None,
        exclude_user: Optional[int] = None,
        extra_user_ids: Iterable[int] = (),
    ) -> None:
        event = TransportEvent.build(event_type, conversation_id, data)
        recipients = set(await self._conversation_repo.list_member_ids(conversation_id))
        recipients.update(extra_user_ids)
        recipients.discard(exclude_user)
        for user_id in sorted(recipients):
            await self.send_to_user(user_id, event)


class PushNotifier:
    """Offline delivery for new messages through registered device tokens."""

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        device_repo: DeviceRepository,
        connections: ConnectionManager = manager,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._device_repo = device_repo
        self._connections = connections

    async def _is_online(self, user_id: int) -> bool:
        if self._connections.is_connected(user_id):
            return True
        bus = await get_bus()
        try:
            return await bus.is_online(user_id)
        except RedisError as exc:
            logger.debug("Presence lookup for user %s failed: %s", user_id, exc)
            return False

    async def notify_new_message(self, conversation: Dict[str, Any], message: Dict[str, Any]) -> None:
        push = await get_push()
        if not getattr(push, "enabled", False):
            return
        now = datetime.now(timezone.utc)
        targets = []
        for member in await self._conversation_repo.list_members(conversation["_id"]):
            user_id = member["user_id"]
            if user_id == message["sender_id"]:
                continue
            muted_until = as_utc(member.get("muted_until"))
            if muted_until and muted_until > now:
                continue
            if await self._is_online(user_id):
                continue
            targets.append(user_id)
        if not targets:
            return
        tokens = await self._device_repo.tokens_for(targets, platform="fcm")
        body = message.get("body") or "Sent an attachment"
        data = {"conversation_id": conversation["_id"], "message_id": message["_id"]}
        await push.send_fcm(tokens, conversation.get("name") or "New message", body[:200], data)
