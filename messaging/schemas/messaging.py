from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from messaging.schemas.suggestions import SuggestionPayload


ConversationType = Literal["global", "team", "group", "dm", "self", "password_vault"]
MemberRole = Literal["owner", "admin", "member", "viewer"]
SuggestionStatus = Literal["pending", "accepted", "dismissed"]

EXPLICIT_CONVERSATION_TYPES = ("dm", "group", "team", "self")


# ---- requests ---------------------------------------------------------------


class CreateConversationRequest(BaseModel):

    type: ConversationType
    name: str = ""
    topic: str = ""
    team_id: Optional[int] = None
    user_ids: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_type_constraints(self) -> "CreateConversationRequest":
        if self.type not in EXPLICIT_CONVERSATION_TYPES:
            raise ValueError("Only dm, group, team and self conversations can be created explicitly")
        if self.type == "dm" and len(set(self.user_ids)) != 1:
            raise ValueError("DM conversation requires exactly one target user_id")
        if self.type in ("group", "team") and not self.name.strip():
            raise ValueError("Conversation name is required")
        if self.type == "team" and self.team_id is None:
            raise ValueError("team_id is required for team conversations")
        return self


class UpdateConversationRequest(BaseModel):

    name: Optional[str] = None
    topic: Optional[str] = None
    is_archived: Optional[bool] = None


class AddMemberRequest(BaseModel):

    user_id: int
    role: Literal["admin", "member", "viewer"] = "member"


class UpdateMembershipRequest(BaseModel):

    # an explicit null clears muted_until; omitting it leaves it alone
    muted_until: Optional[datetime] = None
    is_hidden: Optional[bool] = None


class MarkReadRequest(BaseModel):

    last_read_message_id: int = Field(ge=1)


class FileDescriptor(BaseModel):
    """Opaque file handle returned by the upload collaborator."""

    id: int
    original_name: str
    mime_type: str = "application/octet-stream"


class AttachmentInput(BaseModel):

    kind: str = "file"
    file_id: Optional[int] = None
    url: str = ""
    title: str = ""
    preview: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_file(cls, descriptor: FileDescriptor) -> "AttachmentInput":
        kind = "image" if descriptor.mime_type.startswith("image/") else "file"
        return cls(
            kind=kind,
            file_id=descriptor.id,
            title=descriptor.original_name,
            preview={"original_name": descriptor.original_name, "mime_type": descriptor.mime_type},
        )


class ReferenceInput(BaseModel):

    entity_type: str = Field(min_length=1)
    entity_id: int
    deep_link: str = ""


class SendMessageRequest(BaseModel):

    body: str = ""
    attachments: List[AttachmentInput] = Field(default_factory=list)
    references: List[ReferenceInput] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_sensitive: bool = False

    @model_validator(mode="after")
    def _require_content(self) -> "SendMessageRequest":
        if not self.body.strip() and not self.attachments:
            raise ValueError("Message body or attachments are required")
        return self


class UpdateMessageRequest(BaseModel):

    body: str

    @field_validator("body")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message body cannot be empty")
        return value


class ReactionRequest(BaseModel):

    emoji: str

    @field_validator("emoji")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Emoji is required")
        return value


class MessageSearchRequest(BaseModel):

    query: str = ""
    conversation_ids: List[int] = Field(default_factory=list)
    sender_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    attachment_kinds: List[str] = Field(default_factory=list)
    reference_types: List[str] = Field(default_factory=list)
    has_links: Optional[bool] = None
    has_attachments: Optional[bool] = None
    has_suggestions: Optional[bool] = None
    mention_only: bool = False
    limit: int = 50
    offset: int = 0

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        if value <= 0:
            return 50
        return min(value, 100)

    @field_validator("offset")
    @classmethod
    def _clamp_offset(cls, value: int) -> int:
        return max(value, 0)


class AcceptSuggestionRequest(BaseModel):
    """Opaque accept payload; forwarded to whatever acts on the suggestion."""

    model_config = ConfigDict(extra="allow")

    redact_original: Optional[bool] = None


class CreateVaultItemRequest(BaseModel):

    label: str
    secret: str = Field(min_length=1)
    notes: str = ""
    source_message_id: Optional[int] = None
    allow_reveal: bool = True
    expires_at: Optional[datetime] = None

    @field_validator("label")
    @classmethod
    def _label_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Label is required")
        return value


class ShareVaultItemRequest(BaseModel):

    target_conversation_id: int
    expires_at: Optional[datetime] = None
    allow_reveal: Optional[bool] = None


class UnshareVaultItemRequest(BaseModel):

    target_conversation_id: Optional[int] = None


class RegisterDeviceRequest(BaseModel):

    platform: Literal["fcm", "webpush"]
    token: str = Field(min_length=1)


# ---- response contracts -----------------------------------------------------


class Conversation(BaseModel):

    id: int
    type: ConversationType
    name: str
    topic: Optional[str] = None
    team_id: Optional[int] = None
    created_by: int
    is_default: bool = False
    is_archived: bool = False
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConversationMember(BaseModel):

    conversation_id: int
    user_id: int
    role: MemberRole
    joined_at: Optional[datetime] = None
    last_read_message_id: Optional[int] = None
    last_read_at: Optional[datetime] = None
    muted_until: Optional[datetime] = None
    is_hidden: bool = False


class MessageAttachment(BaseModel):

    id: int
    message_id: int
    kind: str
    file_id: Optional[int] = None
    url: str = ""
    title: str = ""
    preview: Dict[str, Any] = Field(default_factory=dict)


class MessageReference(BaseModel):

    id: int
    message_id: int
    entity_type: str
    entity_id: int
    deep_link: str = ""


class MessageSuggestion(BaseModel):

    id: int
    message_id: int
    type: str
    payload: SuggestionPayload
    status: SuggestionStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _tag_payload(cls, data: Any) -> Any:
        # the wire format keeps the discriminator beside the payload
        if isinstance(data, dict) and isinstance(data.get("payload"), dict):
            data = dict(data)
            data["payload"] = {**data["payload"], "type": data.get("type")}
        return data


class MessageReaction(BaseModel):

    id: int
    message_id: int
    user_id: int
    emoji: str


class Message(BaseModel):

    id: int
    conversation_id: int
    sender_id: int
    body: str = ""
    is_sensitive: bool = False
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    attachments: List[MessageAttachment] = Field(default_factory=list)
    references: List[MessageReference] = Field(default_factory=list)
    suggestions: List[MessageSuggestion] = Field(default_factory=list)
    reactions: List[MessageReaction] = Field(default_factory=list)

    @property
    def is_tombstone(self) -> bool:
        return self.deleted_at is not None


class ConversationListItem(BaseModel):

    conversation: Conversation
    role: MemberRole
    unread_count: int = 0
    last_message: Optional[Message] = None


class ConversationDetail(BaseModel):

    conversation: Conversation
    membership: ConversationMember
    members: List[ConversationMember] = Field(default_factory=list)


class MessagePage(BaseModel):

    messages: List[Message] = Field(default_factory=list)
    next_cursor: Optional[int] = None


class SendMessageResult(BaseModel):

    message: Message
    warning: Optional[str] = None


class SearchResult(BaseModel):

    results: List[Message] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


class SuggestionDecision(BaseModel):

    suggestion: MessageSuggestion
    message: Optional[str] = None
    result: Optional[Any] = None


class RevealedMessage(BaseModel):

    message_id: int
    plaintext: str


class VaultItem(BaseModel):

    id: int
    label: str
    owner_user_id: int
    source_message_id: Optional[int] = None
    last_accessed_at: Optional[datetime] = None
    shared: bool = False
    allow_reveal: bool = True
    expires_at: Optional[datetime] = None
    target_conversation_id: Optional[int] = None


class VaultSecret(BaseModel):

    id: int
    label: str
    secret: str
    notes: str = ""
    warning: Optional[str] = None
