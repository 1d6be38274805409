from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, TypedDict


SuggestionStatus = Literal["pending", "accepted", "dismissed"]


class AttachmentDocument(TypedDict, total=False):
    id: int
    message_id: int
    kind: str
    file_id: Optional[int]
    url: str
    title: str
    preview: Dict[str, Any]


class ReferenceDocument(TypedDict, total=False):
    id: int
    message_id: int
    entity_type: str
    entity_id: int
    deep_link: str


class MessageDocument(TypedDict, total=False):
    _id: int
    conversation_id: int
    sender_id: int
    # masked placeholder when is_sensitive
    body: str
    is_sensitive: bool
    edited_at: Optional[datetime]
    deleted_at: Optional[datetime]
    # sensitive_payload lives here when is_sensitive
    metadata: Dict[str, Any]
    attachments: List[AttachmentDocument]
    references: List[ReferenceDocument]
    created_at: datetime
    updated_at: datetime


class SuggestionDocument(TypedDict, total=False):
    _id: int
    message_id: int
    type: str
    payload: Dict[str, Any]
    status: SuggestionStatus
    accepted_payload: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class ReactionDocument(TypedDict, total=False):
    _id: int
    message_id: int
    user_id: int
    emoji: str
    created_at: datetime
