from datetime import datetime
from typing import Literal, TypedDict


PushPlatform = Literal["fcm", "webpush"]


class DeviceDocument(TypedDict, total=False):
    user_id: int
    platform: PushPlatform
    token: str
    last_seen_at: datetime
