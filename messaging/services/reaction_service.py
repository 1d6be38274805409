from typing import Any, Dict

from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.reaction_repository import ReactionRepository
from messaging.services.access import require_message_access
from messaging.services.events import EventPublisher
from messaging.services.serializers import reaction_out


class ReactionService:

    def __init__(
        self,
        reaction_repo: ReactionRepository,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        events: EventPublisher,
    ) -> None:
        self._reaction_repo = reaction_repo
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._events = events

    async def add_reaction(self, user_id: int, message_id: int, emoji: str) -> Dict[str, Any]:
        message, _, _ = await require_message_access(self._message_repo, self._conversation_repo, message_id, user_id)
        reaction = reaction_out(await self._reaction_repo.add(message_id, user_id, emoji.strip()))
        await self._events.broadcast(message["conversation_id"], "reaction.added", reaction)
        return reaction

    async def remove_reaction(self, user_id: int, message_id: int, emoji: str) -> None:
        message, _, _ = await require_message_access(self._message_repo, self._conversation_repo, message_id, user_id)
        emoji = emoji.strip()
        if await self._reaction_repo.remove(message_id, user_id, emoji):
            await self._events.broadcast(
                message["conversation_id"],
                "reaction.removed",
                {"message_id": message_id, "user_id": user_id, "emoji": emoji},
            )
