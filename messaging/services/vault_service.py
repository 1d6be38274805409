import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from messaging.errors import AuthorizationError, MessagingError, NotFoundError, ValidationError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.vault_repository import VaultRepository
from messaging.schemas.messaging import CreateVaultItemRequest, ShareVaultItemRequest
from messaging.services.access import require_member, require_message_access
from messaging.services.events import EventPublisher
from messaging.services.sensitive import seal_body, sealed_plaintext
from messaging.services.serializers import as_utc, vault_item_out
from messaging.utils.security import seal, unseal

logger = logging.getLogger(__name__)

REVEAL_WARNING = "Use a dedicated password manager for long-term storage of secrets."
MOVED_PLACEHOLDER = "[moved to vault]"


def is_expired(item: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expires_at = as_utc(item.get("expires_at"))
    return expires_at is not None and expires_at <= (now or datetime.now(timezone.utc))


class VaultService:

    def __init__(
        self,
        vault_repo: VaultRepository,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        events: EventPublisher,
    ) -> None:
        self._vault_repo = vault_repo
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo
        self._events = events

    async def _get_owned(self, user_id: int, item_id: int, action: str) -> Dict[str, Any]:
        item = await self._vault_repo.get(item_id)
        if not item:
            raise NotFoundError("Vault item not found")
        if item["owner_user_id"] != user_id:
            raise AuthorizationError(f"Only the owner can {action} vault items")
        return item

    async def list_items(self, user_id: int) -> List[Dict[str, Any]]:
        owned = await self._vault_repo.list_owned(user_id)
        memberships = await self._conversation_repo.list_memberships_for_user(user_id)
        shared = await self._vault_repo.list_shared_into(
            [m["conversation_id"] for m in memberships], exclude_owner=user_id
        )
        now = datetime.now(timezone.utc)
        return [vault_item_out(i) for i in owned] + [vault_item_out(i) for i in shared if not is_expired(i, now)]

    async def create_item(self, user_id: int, req: CreateVaultItemRequest) -> Dict[str, Any]:
        if req.source_message_id is not None:
            message, convo, _ = await require_message_access(
                self._message_repo, self._conversation_repo, req.source_message_id, user_id
            )
            if message.get("deleted_at") is not None:
                raise NotFoundError("Message not found")
            if not message.get("is_sensitive"):
                masked, payload = seal_body(message.get("body", ""), convo["type"])
                await self._message_repo.update_message(
                    message["_id"],
                    {"body": masked, "is_sensitive": True, "metadata.sensitive_payload": payload},
                )
        item = await self._vault_repo.create(
            owner_user_id=user_id,
            label=req.label,
            encrypted_secret=seal(req.secret),
            encrypted_notes=seal(req.notes) if req.notes.strip() else "",
            source_message_id=req.source_message_id,
            allow_reveal=req.allow_reveal,
            expires_at=req.expires_at,
        )
        return vault_item_out(item)

    async def import_message(self, user_id: int, message: Dict[str, Any], redact_original: bool = True) -> Dict[str, Any]:
        """Move a chat message into the caller's vault, leaving a reference on the message."""
        if message.get("deleted_at") is not None:
            raise NotFoundError("Message not found")
        if message.get("is_sensitive"):
            # the stored body is only the mask
            secret = sealed_plaintext(message)
            if secret is None:
                raise NotFoundError("No sensitive content on this message")
        else:
            secret = message.get("body", "")
        if not secret.strip():
            raise ValidationError("Message has no content to store")
        item = await self._vault_repo.create(
            owner_user_id=user_id,
            label="Imported from chat",
            encrypted_secret=seal(secret),
            encrypted_notes=seal(f"Imported from message #{message['_id']}"),
            source_message_id=message["_id"],
        )
        if redact_original:
            await self._message_repo.update_message(
                message["_id"],
                {
                    "body": MOVED_PLACEHOLDER,
                    "is_sensitive": True,
                    "edited_at": datetime.now(timezone.utc),
                    "metadata.sensitive_payload": None,
                },
            )
        ref = await self._message_repo.append_reference(
            message["_id"], "password_vault_item", item["_id"], f"/app/messages?vaultItem={item['_id']}"
        )
        return {"vault_item_id": item["_id"], "deep_link": ref["deep_link"]}

    async def share_item(self, user_id: int, item_id: int, req: ShareVaultItemRequest) -> Dict[str, Any]:
        await self._get_owned(user_id, item_id, "share")
        await require_member(self._conversation_repo, req.target_conversation_id, user_id)
        policy: Dict[str, Any] = {}
        if req.allow_reveal is not None:
            policy["allow_reveal"] = req.allow_reveal
        if "expires_at" in req.model_fields_set:
            policy["expires_at"] = req.expires_at
        item = await self._vault_repo.add_share(item_id, req.target_conversation_id, policy)
        logger.info("vault share: item=%s owner=%s conversation=%s", item_id, user_id, req.target_conversation_id)
        out = vault_item_out(item)
        await self._events.broadcast(req.target_conversation_id, "vault.shared", out, exclude_user=user_id)
        return out

    async def reveal_item(self, user_id: int, item_id: int) -> Dict[str, Any]:
        item = await self._vault_repo.get(item_id)
        if not item:
            raise NotFoundError("Vault item not found")
        authorized = item["owner_user_id"] == user_id
        if not authorized:
            for conversation_id in item.get("share_targets") or []:
                if await self._conversation_repo.get_membership(conversation_id, user_id):
                    authorized = True
                    break
        if not authorized:
            raise AuthorizationError("You are not allowed to reveal this vault item")
        if not item.get("allow_reveal", True):
            raise AuthorizationError("Reveal is disabled for this vault item")
        if is_expired(item):
            raise AuthorizationError("Vault item has expired")

        secret = unseal(item["encrypted_secret"])
        if secret is None:
            raise MessagingError("Failed to decrypt secret")
        notes = unseal(item["encrypted_notes"]) if item.get("encrypted_notes") else ""
        await self._vault_repo.touch_accessed(item_id)
        logger.info("vault reveal: item=%s user=%s owner=%s", item_id, user_id, item["owner_user_id"])
        return {
            "id": item["_id"],
            "label": item["label"],
            "secret": secret,
            "notes": notes or "",
            "warning": REVEAL_WARNING,
        }

    async def unshare_item(self, user_id: int, item_id: int, target_conversation_id: Optional[int] = None) -> Dict[str, Any]:
        await self._get_owned(user_id, item_id, "unshare")
        item = await self._vault_repo.remove_share(item_id, target_conversation_id)
        logger.info("vault unshare: item=%s owner=%s conversation=%s", item_id, user_id, target_conversation_id or "all")
        return vault_item_out(item)
