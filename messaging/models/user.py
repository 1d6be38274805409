from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: int
    # mirror of _id added on read
    id: int
    username: str
    email: str
    full_name: Optional[str]
    avatar_url: Optional[str]
