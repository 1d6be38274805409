from datetime import datetime
from typing import Literal, Optional, TypedDict


ConversationType = Literal["global", "team", "group", "dm", "self", "password_vault"]
MemberRole = Literal["owner", "admin", "member", "viewer"]


class ConversationDocument(TypedDict, total=False):
    _id: int
    type: ConversationType
    name: str
    topic: Optional[str]
    team_id: Optional[int]
    created_by: int
    is_default: bool
    is_archived: bool
    # only moves forward; drives list ordering
    last_message_at: datetime
    created_at: datetime
    updated_at: datetime


class ConversationMemberDocument(TypedDict, total=False):
    _id: int
    conversation_id: int
    user_id: int
    role: MemberRole
    joined_at: datetime
    # read watermark, never regresses
    last_read_message_id: Optional[int]
    last_read_at: Optional[datetime]
    muted_until: Optional[datetime]
    is_hidden: bool
