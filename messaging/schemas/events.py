from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class TransportEvent(BaseModel):
    """One frame on the realtime connection, in either direction."""

    # inbound client frames carry extra routing fields (target_user_id, sdp, ...)
    model_config = ConfigDict(extra="allow")

    type: str
    conversation_id: Optional[int] = None
    data: Any = None
    timestamp: Optional[datetime] = None

    @classmethod
    def build(cls, event_type: str, conversation_id: Optional[int] = None, data: Any = None) -> "TransportEvent":
        return cls(type=event_type, conversation_id=conversation_id, data=data, timestamp=datetime.now(timezone.utc))

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)
