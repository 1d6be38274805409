from datetime import datetime
from typing import List, Optional, TypedDict


class VaultItemDocument(TypedDict, total=False):
    _id: int
    owner_user_id: int
    label: str
    encrypted_secret: str
    encrypted_notes: str
    source_message_id: Optional[int]
    allow_reveal: bool
    expires_at: Optional[datetime]
    # conversations the item is shared into, most recent last
    share_targets: List[int]
    last_accessed_at: Optional[datetime]
    created_by: int
    created_at: datetime
    updated_at: datetime
