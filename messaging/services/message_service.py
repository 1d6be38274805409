import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from messaging.errors import AuthorizationError, ValidationError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.reaction_repository import ReactionRepository
from messaging.repositories.suggestion_repository import SuggestionRepository
from messaging.repositories.user_repository import UserRepository
from messaging.schemas.messaging import AttachmentInput, MessageSearchRequest, SendMessageRequest
from messaging.schemas.suggestions import encode_suggestion_payload
from messaging.services.access import WRITER_ROLES, is_admin, require_member, require_message_access
from messaging.services.detector import SENSITIVE_WARNING, SuggestionGenerator
from messaging.services.events import EventPublisher, PushNotifier
from messaging.services.sensitive import seal_body
from messaging.services.serializers import as_utc, message_out

logger = logging.getLogger(__name__)

ATTACHMENT_KINDS = (
    "file", "image", "youtube", "github", "website", "bookmark", "task", "event",
    "calendar", "activity", "learning_path", "saved_search", "voice_note",
)
SENSITIVE_SUGGESTIONS = ("password_warning", "move_to_password_vault")


def normalize_attachment_kind(kind: str) -> str:
    kind = (kind or "").strip().lower()
    return kind if kind in ATTACHMENT_KINDS else "website"


def _attachment_row(att: AttachmentInput) -> Dict[str, Any]:
    return {
        "kind": normalize_attachment_kind(att.kind),
        "file_id": att.file_id,
        "url": att.url.strip(),
        "title": att.title.strip(),
        "preview": att.preview,
    }


class MessageService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        reaction_repo: ReactionRepository,
        suggestion_repo: SuggestionRepository,
        user_repo: UserRepository,
        generator: SuggestionGenerator,
        events: EventPublisher,
        notifier: Optional[PushNotifier] = None,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._reaction_repo = reaction_repo
        self._suggestion_repo = suggestion_repo
        self._user_repo = user_repo
        self._generator = generator
        self._events = events
        self._notifier = notifier

    async def hydrate(self, messages: List[Dict[str, Any]], privileged: bool = False) -> List[Dict[str, Any]]:
        ids = [m["_id"] for m in messages]
        reactions: Dict[int, list] = {}
        for r in await self._reaction_repo.list_for_messages(ids):
            reactions.setdefault(r["message_id"], []).append(r)
        suggestions: Dict[int, list] = {}
        for s in await self._suggestion_repo.list_for_messages(ids):
            suggestions.setdefault(s["message_id"], []).append(s)
        return [
            message_out(m, reactions.get(m["_id"], []), suggestions.get(m["_id"], []), privileged=privileged)
            for m in messages
        ]

    async def get_history(self, user_id: int, conversation_id: int, limit: int = 50, cursor: Optional[int] = None):
        _, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        items, next_cursor = await self._message_repo.get_messages_by_conversation(conversation_id, limit=limit, cursor=cursor)
        return {"messages": await self.hydrate(items, privileged=is_admin(membership)), "next_cursor": next_cursor}

    async def send_message(self, user_id: int, conversation_id: int, req: SendMessageRequest) -> Dict[str, Any]:
        convo, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        if convo.get("is_archived"):
            raise ValidationError("Conversation is archived")
        if membership["role"] not in WRITER_ROLES:
            raise AuthorizationError("Viewers cannot post messages")

        body = req.body.strip()
        detection = self._generator.analyze(body)
        is_sensitive = req.is_sensitive or detection.is_sensitive or convo["type"] == "password_vault"

        attachments = [_attachment_row(a) for a in req.attachments]
        suggestions = list(detection.suggestions)
        if is_sensitive:
            # nothing derived from the plaintext may leak through suggestions or link previews
            suggestions = [s for s in suggestions if s.type in SENSITIVE_SUGGESTIONS]
        else:
            for inferred in detection.attachments:
                if not any(a["kind"] == inferred["kind"] and a["url"] == inferred["url"] for a in attachments):
                    attachments.append(inferred)

        metadata = {k: v for k, v in req.metadata.items() if k != "sensitive_payload"}
        if is_sensitive:
            body, metadata["sensitive_payload"] = seal_body(body, convo["type"])

        saved = await self._message_repo.save_message(
            conversation_id=conversation_id,
            sender_id=user_id,
            body=body,
            is_sensitive=is_sensitive,
            metadata=metadata,
            attachments=attachments,
            references=[r.model_dump() for r in req.references],
        )
        suggestion_docs = await self._suggestion_repo.create_many(
            saved["_id"], [encode_suggestion_payload(s) for s in suggestions]
        )
        await self._conversation_repo.touch_last_message(conversation_id, saved["created_at"])

        out = message_out(saved, [], suggestion_docs)
        await self._events.broadcast(conversation_id, "message.created", out)
        if self._notifier is not None:
            await self._notifier.notify_new_message(convo, saved)
        return {"message": out, "warning": SENSITIVE_WARNING if is_sensitive else None}

    async def update_message(self, user_id: int, message_id: int, body: str) -> Dict[str, Any]:
        message, convo, membership = await require_message_access(
            self._message_repo, self._conversation_repo, message_id, user_id
        )
        if message["sender_id"] != user_id:
            raise AuthorizationError("Only the sender can edit a message")
        if message.get("deleted_at") is not None:
            raise ValidationError("Deleted messages cannot be edited")

        body = body.strip()
        is_sensitive = (
            bool(message.get("is_sensitive"))
            or convo["type"] == "password_vault"
            or self._generator.analyze(body).is_sensitive
        )
        fields: Dict[str, Any] = {"body": body, "is_sensitive": is_sensitive, "edited_at": datetime.now(timezone.utc)}
        if is_sensitive:
            fields["body"], fields["metadata.sensitive_payload"] = seal_body(body, convo["type"])
        updated = await self._message_repo.update_message(message_id, fields)

        out = (await self.hydrate([updated], privileged=is_admin(membership)))[0]
        await self._events.broadcast(message["conversation_id"], "message.updated", out)
        return out

    async def delete_message(self, user_id: int, message_id: int) -> None:
        message, _, membership = await require_message_access(
            self._message_repo, self._conversation_repo, message_id, user_id
        )
        if message["sender_id"] != user_id and not is_admin(membership):
            raise AuthorizationError("Only the sender or a conversation admin can delete a message")
        if message.get("deleted_at") is not None:
            return
        updated = await self._message_repo.soft_delete(message_id)
        await self._events.broadcast(
            message["conversation_id"],
            "message.deleted",
            {"id": message_id, "deleted_at": as_utc(updated["deleted_at"])},
        )

    async def search_messages(self, user_id: int, req: MessageSearchRequest) -> Dict[str, Any]:
        memberships = await self._conversation_repo.list_memberships_for_user(user_id)
        conversations = await self._conversation_repo.list_by_ids(m["conversation_id"] for m in memberships)
        allowed = {c["_id"] for c in conversations if c["type"] != "password_vault"}
        if req.conversation_ids:
            allowed &= set(req.conversation_ids)

        query: Dict[str, Any] = {"conversation_id": {"$in": sorted(allowed)}, "deleted_at": None}
        clauses: List[Dict[str, Any]] = []
        if req.query.strip():
            clauses.append({"body": {"$regex": re.escape(req.query.strip()), "$options": "i"}})
        if req.sender_id is not None:
            query["sender_id"] = req.sender_id
        if req.date_from or req.date_to:
            created: Dict[str, Any] = {}
            if req.date_from:
                created["$gte"] = req.date_from
            if req.date_to:
                created["$lte"] = req.date_to
            query["created_at"] = created
        if req.attachment_kinds:
            query["attachments.kind"] = {"$in": [normalize_attachment_kind(k) for k in req.attachment_kinds]}
        if req.reference_types:
            query["references.entity_type"] = {"$in": req.reference_types}
        if req.has_attachments is not None:
            query["attachments.0"] = {"$exists": req.has_attachments}
        if req.has_links is not None:
            linked = {"attachments": {"$elemMatch": {"url": {"$nin": ["", None]}}}}
            clauses.append(linked if req.has_links else {"$nor": [linked]})
        if req.has_suggestions is not None:
            with_suggestions = await self._suggestion_repo.message_ids_with_suggestions()
            query["_id"] = {"$in" if req.has_suggestions else "$nin": with_suggestions}
        if req.mention_only:
            user = await self._user_repo.get_user_by_id(user_id)
            username = (user or {}).get("username") or ""
            if not username:
                return {"results": [], "total": 0, "limit": req.limit, "offset": req.offset}
            clauses.append({"body": {"$regex": "@" + re.escape(username), "$options": "i"}})
        if clauses:
            query["$and"] = clauses

        items, total = await self._message_repo.search(query, offset=req.offset, limit=req.limit)
        return {
            "results": await self.hydrate(items),
            "total": total,
            "limit": req.limit,
            "offset": req.offset,
        }
