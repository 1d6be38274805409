from typing import Optional, Protocol


class CredentialsProvider(Protocol):
    """Source of the bearer token; asked again before every connection attempt."""

    async def get_token(self) -> Optional[str]:
        ...


class StaticCredentials:

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    async def get_token(self) -> Optional[str]:
        return self.token
