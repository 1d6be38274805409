import logging
from typing import Any, Dict, Optional, Tuple

from messaging.errors import NotFoundError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.services.access import require_message_access
from messaging.utils.security import seal, unseal

logger = logging.getLogger(__name__)

HIDDEN_PLACEHOLDER = "[sensitive content hidden]"
PAYLOAD_VERSION = "v1"


def mask_body(text: str) -> str:
    """Replace every word with asterisks so only the shape of the message survives."""
    words = (text or "").split()
    if not words:
        return HIDDEN_PLACEHOLDER
    return " ".join("**" if len(w) <= 2 else "*" * len(w) for w in words)


def seal_body(plaintext: str, scope: str) -> Tuple[str, Dict[str, Any]]:
    masked = mask_body(plaintext)
    payload = {
        "version": PAYLOAD_VERSION,
        "ciphertext": seal(plaintext),
        "masked_body": masked,
        "scope": scope,
    }
    return masked, payload


def sealed_plaintext(message: Dict[str, Any]) -> Optional[str]:
    payload = (message.get("metadata") or {}).get("sensitive_payload") or {}
    ciphertext = payload.get("ciphertext")
    if not ciphertext:
        return None
    return unseal(ciphertext)


class SensitiveContentGate:

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository) -> None:
        self.message_repo = message_repo
        self.conversation_repo = conversation_repo

    async def reveal(self, user_id: int, message_id: int) -> Dict[str, Any]:
        message, _, _ = await require_message_access(self.message_repo, self.conversation_repo, message_id, user_id)
        if not message.get("is_sensitive") or message.get("deleted_at") is not None:
            raise NotFoundError("No sensitive content on this message")
        plaintext = sealed_plaintext(message)
        if plaintext is None:
            raise NotFoundError("No sensitive content on this message")
        logger.info("sensitive reveal: user=%s message=%s conversation=%s", user_id, message_id, message["conversation_id"])
        return {"message_id": message_id, "plaintext": plaintext}
