import logging
from typing import Any, Dict, List

from messaging.errors import ConflictError, NotFoundError, ValidationError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.suggestion_repository import SuggestionRepository
from messaging.schemas.messaging import AcceptSuggestionRequest
from messaging.services.access import is_admin, require_message_access
from messaging.services.detector import SENSITIVE_WARNING
from messaging.services.events import EventPublisher
from messaging.services.serializers import suggestion_out
from messaging.services.vault_service import VaultService

logger = logging.getLogger(__name__)


class SuggestionService:
    """Pending suggestions move exactly once, to accepted or dismissed."""

    def __init__(
        self,
        suggestion_repo: SuggestionRepository,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        vault_service: VaultService,
        events: EventPublisher,
    ) -> None:
        self._suggestion_repo = suggestion_repo
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._vault_service = vault_service
        self._events = events

    async def list_suggestions(self, user_id: int, message_id: int) -> List[Dict[str, Any]]:
        message, _, membership = await require_message_access(
            self._message_repo, self._conversation_repo, message_id, user_id
        )
        if message.get("deleted_at") is not None and not is_admin(membership):
            return []
        return [suggestion_out(s) for s in await self._suggestion_repo.list_for_messages([message_id])]

    async def _pending(self, message_id: int, suggestion_id: int) -> Dict[str, Any]:
        suggestion = await self._suggestion_repo.get(message_id, suggestion_id)
        if not suggestion:
            raise NotFoundError("Suggestion not found")
        if suggestion["status"] != "pending":
            raise ConflictError(f"Suggestion already {suggestion['status']}")
        return suggestion

    async def _resolve(self, message_id: int, suggestion_id: int, status: str, accepted_payload=None) -> Dict[str, Any]:
        resolved = await self._suggestion_repo.resolve(message_id, suggestion_id, status, accepted_payload)
        if resolved is None:
            # someone else got there between the read and the write
            current = await self._suggestion_repo.get(message_id, suggestion_id)
            if not current:
                raise NotFoundError("Suggestion not found")
            raise ConflictError(f"Suggestion already {current['status']}")
        return resolved

    async def _run_action(
        self, user_id: int, message: Dict[str, Any], suggestion: Dict[str, Any], req: AcceptSuggestionRequest
    ) -> Any:
        if suggestion["type"] == "move_to_password_vault":
            redact = req.redact_original is not False
            return await self._vault_service.import_message(user_id, message, redact_original=redact)
        if suggestion["type"] == "password_warning":
            return {"warning": SENSITIVE_WARNING}
        return None

    async def accept(
        self, user_id: int, message_id: int, suggestion_id: int, req: AcceptSuggestionRequest
    ) -> Dict[str, Any]:
        message, _, _ = await require_message_access(self._message_repo, self._conversation_repo, message_id, user_id)
        if message.get("deleted_at") is not None:
            raise ValidationError("Cannot act on a deleted message")
        suggestion = await self._pending(message_id, suggestion_id)
        accepted_payload = req.model_dump(exclude_none=True)
        resolved = await self._resolve(message_id, suggestion_id, "accepted", accepted_payload)

        # an action failure hands the suggestion back as pending
        try:
            result = await self._run_action(user_id, message, suggestion, req)
        except Exception:
            await self._suggestion_repo.reopen(message_id, suggestion_id)
            raise

        logger.info("suggestion %s (%s) accepted by user %s", suggestion_id, suggestion["type"], user_id)
        out = suggestion_out(resolved)
        await self._events.broadcast(
            message["conversation_id"],
            "suggestion.accepted",
            {"suggestion": out, "accepted_payload": accepted_payload, "user_id": user_id},
        )
        return {"suggestion": out, "message": "Suggestion accepted", "result": result}

    async def dismiss(self, user_id: int, message_id: int, suggestion_id: int) -> Dict[str, Any]:
        message, _, _ = await require_message_access(self._message_repo, self._conversation_repo, message_id, user_id)
        await self._pending(message_id, suggestion_id)
        resolved = await self._resolve(message_id, suggestion_id, "dismissed")
        out = suggestion_out(resolved)
        await self._events.broadcast(message["conversation_id"], "suggestion.dismissed", {"suggestion": out})
        return {"suggestion": out, "message": "Suggestion dismissed"}
