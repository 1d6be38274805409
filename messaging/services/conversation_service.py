import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from messaging.errors import AuthorizationError, NotFoundError, ValidationError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.user_repository import UserRepository
from messaging.schemas.messaging import (
    AddMemberRequest,
    CreateConversationRequest,
    UpdateConversationRequest,
    UpdateMembershipRequest,
)
from messaging.services.access import is_admin, require_member
from messaging.services.events import EventPublisher
from messaging.services.serializers import conversation_out, member_out, message_out

logger = logging.getLogger(__name__)

GLOBAL_CHANNELS = ("#general", "#announcements")
PERSONAL_CONVERSATIONS = (("self", "Notes to Self"), ("password_vault", "Password Vault"))
MANAGED_TYPES = ("group", "team")


class ConversationService:

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        events: EventPublisher,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._events = events

    async def ensure_defaults(self, user_id: int) -> None:
        """Global channels for everyone, plus a self and a vault conversation per user."""
        for name in GLOBAL_CHANNELS:
            convo = await self._conversation_repo.find_global(name)
            if not convo:
                convo = await self._conversation_repo.create("global", name, created_by=user_id, is_default=True)
                logger.info("Created default channel %s", name)
                # backfill everyone who existed before the channel did
                await self._conversation_repo.add_members(convo["_id"], await self._user_repo.list_user_ids())
            await self._conversation_repo.add_member(convo["_id"], user_id)
        for convo_type, name in PERSONAL_CONVERSATIONS:
            convo = await self._conversation_repo.find_owned(convo_type, user_id)
            if not convo:
                convo = await self._conversation_repo.create(convo_type, name, created_by=user_id, is_default=True)
            await self._conversation_repo.add_member(convo["_id"], user_id, role="owner")

    async def list_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        await self.ensure_defaults(user_id)
        memberships = await self._conversation_repo.list_memberships_for_user(user_id, include_hidden=False)
        by_conversation = {m["conversation_id"]: m for m in memberships}
        conversations = await self._conversation_repo.list_by_ids(by_conversation.keys())
        items = []
        for convo in conversations:
            membership = by_conversation[convo["_id"]]
            last = await self._message_repo.latest_visible(convo["_id"])
            unread = await self._message_repo.count_unread(
                convo["_id"], user_id, membership.get("last_read_message_id")
            )
            items.append({
                "conversation": conversation_out(convo),
                "role": membership["role"],
                "unread_count": unread,
                "last_message": message_out(last) if last else None,
            })
        return items

    async def create(self, user_id: int, req: CreateConversationRequest) -> Dict[str, Any]:
        if req.type == "self":
            await self.ensure_defaults(user_id)
            convo = await self._conversation_repo.find_owned("self", user_id)
            return conversation_out(convo)

        others = sorted({uid for uid in req.user_ids if uid != user_id})
        if req.type == "dm":
            if not others:
                raise ValidationError("DM conversation requires another user")
            target = others[0]
            if not await self._user_repo.users_exist([target]):
                raise NotFoundError("User not found")
            existing = await self._conversation_repo.find_dm(user_id, target)
            if existing:
                return conversation_out(existing)
        elif not await self._user_repo.users_exist(others):
            raise ValidationError("One or more users do not exist")

        name = req.name.strip()
        if req.type == "dm" and not name:
            name = "Direct message"
        convo = await self._conversation_repo.create(
            req.type,
            name,
            created_by=user_id,
            topic=req.topic.strip(),
            team_id=req.team_id if req.type == "team" else None,
        )
        await self._conversation_repo.add_member(convo["_id"], user_id, role="owner")
        await self._conversation_repo.add_members(convo["_id"], others)
        await self._events.broadcast(convo["_id"], "conversation.created", conversation_out(convo))
        return conversation_out(convo)

    async def is_member(self, conversation_id: int, user_id: int) -> bool:
        return await self._conversation_repo.get_membership(conversation_id, user_id) is not None

    async def get_detail(self, user_id: int, conversation_id: int) -> Dict[str, Any]:
        convo, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        members = await self._conversation_repo.list_members(conversation_id)
        return {
            "conversation": conversation_out(convo),
            "membership": member_out(membership),
            "members": [member_out(m) for m in members],
        }

    async def update(self, user_id: int, conversation_id: int, req: UpdateConversationRequest) -> Dict[str, Any]:
        convo, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        if not is_admin(membership):
            raise AuthorizationError("Only owners and admins can update a conversation")
        if convo["type"] not in MANAGED_TYPES:
            raise ValidationError("Only group and team conversations can be updated")
        fields: Dict[str, Any] = {}
        if req.name is not None:
            if not req.name.strip():
                raise ValidationError("Conversation name cannot be empty")
            fields["name"] = req.name.strip()
        if req.topic is not None:
            fields["topic"] = req.topic.strip() or None
        if req.is_archived is not None:
            fields["is_archived"] = req.is_archived
        if fields:
            convo = await self._conversation_repo.update_fields(conversation_id, fields)
            await self._events.broadcast(conversation_id, "conversation.updated", conversation_out(convo))
        return conversation_out(convo)

    async def add_member(self, user_id: int, conversation_id: int, req: AddMemberRequest) -> Dict[str, Any]:
        convo, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        if not is_admin(membership):
            raise AuthorizationError("Only owners and admins can add members")
        if convo["type"] not in MANAGED_TYPES:
            raise ValidationError("Members can only be added to group and team conversations")
        if not await self._user_repo.users_exist([req.user_id]):
            raise NotFoundError("User not found")
        member = await self._conversation_repo.add_member(conversation_id, req.user_id, role=req.role)
        await self._events.broadcast(conversation_id, "member.added", member_out(member))
        return member_out(member)

    async def remove_member(self, user_id: int, conversation_id: int, target_user_id: int) -> None:
        convo, membership = await require_member(self._conversation_repo, conversation_id, user_id)
        if target_user_id != user_id and not is_admin(membership):
            raise AuthorizationError("Only owners and admins can remove other members")
        if convo["type"] not in MANAGED_TYPES:
            raise ValidationError("Members can only be removed from group and team conversations")
        if not await self._conversation_repo.remove_member(conversation_id, target_user_id):
            raise NotFoundError("Member not found")
        # history stays; the removed user still hears about the removal
        await self._events.broadcast(
            conversation_id,
            "member.removed",
            {"user_id": target_user_id},
            extra_user_ids=[target_user_id],
        )

    async def update_membership(self, user_id: int, conversation_id: int, req: UpdateMembershipRequest) -> Dict[str, Any]:
        await require_member(self._conversation_repo, conversation_id, user_id)
        fields: Dict[str, Any] = {}
        if "muted_until" in req.model_fields_set:
            fields["muted_until"] = req.muted_until
        if req.is_hidden is not None:
            fields["is_hidden"] = req.is_hidden
        if not fields:
            raise ValidationError("Nothing to update")
        member = await self._conversation_repo.update_membership(conversation_id, user_id, fields)
        return member_out(member)

    async def mark_read(self, user_id: int, conversation_id: int, message_id: int) -> Dict[str, Any]:
        await require_member(self._conversation_repo, conversation_id, user_id)
        message = await self._message_repo.get(message_id)
        if not message or message["conversation_id"] != conversation_id:
            raise NotFoundError("Message not found")
        moved = await self._conversation_repo.advance_read(conversation_id, user_id, message_id)
        member = await self._conversation_repo.get_membership(conversation_id, user_id)
        if moved:
            await self._events.broadcast(
                conversation_id,
                "read.updated",
                {
                    "user_id": user_id,
                    "last_read_message_id": member["last_read_message_id"],
                    "last_read_at": member.get("last_read_at") or datetime.now(timezone.utc),
                },
            )
        return member_out(member)
