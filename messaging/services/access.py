from typing import Any, Dict, Tuple

from messaging.errors import AuthorizationError, NotFoundError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository

ADMIN_ROLES = ("owner", "admin")
WRITER_ROLES = ("owner", "admin", "member")


async def require_member(
    conversations: ConversationRepository, conversation_id: int, user_id: int
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    conversation = await conversations.get(conversation_id)
    if not conversation:
        raise NotFoundError("Conversation not found")
    membership = await conversations.get_membership(conversation_id, user_id)
    if not membership:
        raise AuthorizationError("Not a member of this conversation")
    return conversation, membership


async def require_message_access(
    messages: MessageRepository,
    conversations: ConversationRepository,
    message_id: int,
    user_id: int,
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    message = await messages.get(message_id)
    if not message:
        raise NotFoundError("Message not found")
    conversation, membership = await require_member(conversations, message["conversation_id"], user_id)
    return message, conversation, membership


def is_admin(membership: Dict[str, Any]) -> bool:
    return membership.get("role") in ADMIN_ROLES
