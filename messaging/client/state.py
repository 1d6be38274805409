import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from messaging.schemas.events import TransportEvent
from messaging.schemas.messaging import (
    Conversation,
    ConversationListItem,
    Message,
    MessagePage,
    MessageReaction,
    MessageSuggestion,
)

logger = logging.getLogger(__name__)


class LocalState:
    """
    Client-side view of conversations and loaded messages.

    Only server responses and inbound transport events change it. Entries are
    keyed by id and the most recent write wins.
    """

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        self.conversations: Dict[int, ConversationListItem] = {}
        self.messages: Dict[int, Dict[int, Message]] = {}
        self.read_watermarks: Dict[Tuple[int, int], int] = {}
        self.typing: Dict[int, Set[int]] = {}

    # ---- responses ----------------------------------------------------------

    def load_conversations(self, items: Iterable[ConversationListItem]) -> None:
        self.conversations = {item.conversation.id: item for item in items}

    def merge_page(self, conversation_id: int, page: MessagePage) -> None:
        for message in page.messages:
            self.upsert_message(message)
        self.messages.setdefault(conversation_id, {})

    def upsert_message(self, message: Message) -> None:
        self.messages.setdefault(message.conversation_id, {})[message.id] = message

    def timeline(self, conversation_id: int) -> List[Message]:
        """Loaded messages, oldest first."""
        return [m for _, m in sorted(self.messages.get(conversation_id, {}).items())]

    def find_message(self, message_id: int) -> Optional[Message]:
        for bucket in self.messages.values():
            if message_id in bucket:
                return bucket[message_id]
        return None

    # ---- inbound events -----------------------------------------------------

    def apply_event(self, event: TransportEvent) -> bool:
        """Fold one transport event into the state. Returns False for events it ignores."""
        handler = getattr(self, "_on_" + event.type.replace(".", "_"), None)
        if handler is None:
            return False
        data = event.data if isinstance(event.data, dict) else {}
        try:
            handler(event.conversation_id, data)
        except (PydanticValidationError, KeyError, TypeError) as exc:
            logger.debug("Ignoring malformed %s event: %s", event.type, exc)
            return False
        return True

    def _on_message_created(self, conversation_id: Optional[int], data: dict) -> None:
        message = Message.model_validate(data)
        self.upsert_message(message)
        item = self.conversations.get(message.conversation_id)
        if item is not None:
            unread = item.unread_count + (0 if message.sender_id == self.user_id else 1)
            self.conversations[message.conversation_id] = item.model_copy(
                update={"last_message": message, "unread_count": unread}
            )

    def _on_message_updated(self, conversation_id: Optional[int], data: dict) -> None:
        self.upsert_message(Message.model_validate(data))

    def _on_message_deleted(self, conversation_id: Optional[int], data: dict) -> None:
        message = self.find_message(data["id"])
        if message is None:
            return
        tombstone = {
            **message.model_dump(),
            "deleted_at": data.get("deleted_at"),
            "body": "",
            "attachments": [],
            "metadata": {},
            "suggestions": [],
        }
        self.upsert_message(Message.model_validate(tombstone))

    def _on_reaction_added(self, conversation_id: Optional[int], data: dict) -> None:
        reaction = MessageReaction.model_validate(data)
        message = self.find_message(reaction.message_id)
        if message is None or any(r.id == reaction.id for r in message.reactions):
            return
        self.upsert_message(message.model_copy(update={"reactions": [*message.reactions, reaction]}))

    def _on_reaction_removed(self, conversation_id: Optional[int], data: dict) -> None:
        message = self.find_message(data["message_id"])
        if message is None:
            return
        kept = [r for r in message.reactions if not (r.user_id == data["user_id"] and r.emoji == data["emoji"])]
        self.upsert_message(message.model_copy(update={"reactions": kept}))

    def _replace_suggestion(self, data: dict) -> None:
        suggestion = MessageSuggestion.model_validate(data["suggestion"])
        message = self.find_message(suggestion.message_id)
        if message is None:
            return
        others = [s for s in message.suggestions if s.id != suggestion.id]
        merged = sorted([*others, suggestion], key=lambda s: s.id)
        self.upsert_message(message.model_copy(update={"suggestions": merged}))

    def _on_suggestion_accepted(self, conversation_id: Optional[int], data: dict) -> None:
        self._replace_suggestion(data)

    def _on_suggestion_dismissed(self, conversation_id: Optional[int], data: dict) -> None:
        self._replace_suggestion(data)

    def _on_read_updated(self, conversation_id: Optional[int], data: dict) -> None:
        key = (conversation_id, data["user_id"])
        watermark = data["last_read_message_id"]
        # watermarks only move forward
        if watermark > self.read_watermarks.get(key, 0):
            self.read_watermarks[key] = watermark
        if data["user_id"] == self.user_id and conversation_id in self.conversations:
            self.conversations[conversation_id] = self.conversations[conversation_id].model_copy(
                update={"unread_count": 0}
            )

    def _on_typing_started(self, conversation_id: Optional[int], data: dict) -> None:
        self.typing.setdefault(conversation_id, set()).add(data["user_id"])

    def _on_typing_stopped(self, conversation_id: Optional[int], data: dict) -> None:
        self.typing.get(conversation_id, set()).discard(data["user_id"])

    def _on_conversation_created(self, conversation_id: Optional[int], data: dict) -> None:
        conversation = Conversation.model_validate(data)
        if conversation.id not in self.conversations:
            role = "owner" if conversation.created_by == self.user_id else "member"
            self.conversations[conversation.id] = ConversationListItem(conversation=conversation, role=role)

    def _on_conversation_updated(self, conversation_id: Optional[int], data: dict) -> None:
        conversation = Conversation.model_validate(data)
        item = self.conversations.get(conversation.id)
        if item is not None:
            self.conversations[conversation.id] = item.model_copy(update={"conversation": conversation})

    def _on_member_removed(self, conversation_id: Optional[int], data: dict) -> None:
        if data["user_id"] == self.user_id:
            self.conversations.pop(conversation_id, None)
