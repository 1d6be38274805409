import logging
import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from messaging.client.credentials import CredentialsProvider
from messaging.errors import MessagingError, TransportError, ValidationError, error_for_status
from messaging.schemas.messaging import (
    AcceptSuggestionRequest,
    AddMemberRequest,
    AttachmentInput,
    Conversation,
    ConversationDetail,
    ConversationListItem,
    ConversationMember,
    CreateConversationRequest,
    CreateVaultItemRequest,
    FileDescriptor,
    Message,
    MessagePage,
    MessageReaction,
    MessageSearchRequest,
    MessageSuggestion,
    ReferenceInput,
    RegisterDeviceRequest,
    RevealedMessage,
    SearchResult,
    SendMessageRequest,
    SendMessageResult,
    ShareVaultItemRequest,
    SuggestionDecision,
    UpdateConversationRequest,
    UpdateMembershipRequest,
    VaultItem,
    VaultSecret,
)

logger = logging.getLogger(__name__)


def _validated(model: type, data: Union[BaseModel, Dict[str, Any]]) -> BaseModel:
    # catch bad payloads before they cost a round trip
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        raise ValidationError(first.get("msg", "Invalid request"))


def _error_from_response(response: httpx.Response) -> MessagingError:
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail")
        if isinstance(detail, str):
            message = detail
    return error_for_status(response.status_code, message)


class MessagingClient:
    """
    Async REST client for the messaging API.

    ``base_url`` includes the API prefix, e.g. ``https://host/api/v1/messages``.
    Requests carry no timeout unless one is given.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialsProvider,
        files_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._credentials = credentials
        self._files_url = files_url.rstrip("/") if files_url else None
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "MessagingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _headers(self) -> Dict[str, str]:
        token = await self._credentials.get_token()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        headers = await self._headers()
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise TransportError(str(exc) or "Transport unavailable")
        if not response.is_success:
            raise _error_from_response(response)
        if not response.content:
            return {}
        return response.json()

    # ---- conversations ------------------------------------------------------

    async def list_conversations(self) -> List[ConversationListItem]:
        data = await self._request("GET", "/conversations")
        return [ConversationListItem.model_validate(item) for item in data.get("conversations", [])]

    async def create_conversation(self, payload: Union[CreateConversationRequest, Dict[str, Any]]) -> Conversation:
        req = _validated(CreateConversationRequest, payload)
        data = await self._request("POST", "/conversations", json=req.model_dump(mode="json"))
        return Conversation.model_validate(data["conversation"])

    async def get_conversation(self, conversation_id: int) -> ConversationDetail:
        data = await self._request("GET", f"/conversations/{conversation_id}")
        return ConversationDetail.model_validate(data)

    async def update_conversation(self, conversation_id: int, **fields) -> Conversation:
        req = _validated(UpdateConversationRequest, fields)
        body = req.model_dump(mode="json", exclude_none=True)
        data = await self._request("PATCH", f"/conversations/{conversation_id}", json=body)
        return Conversation.model_validate(data["conversation"])

    async def add_member(self, conversation_id: int, user_id: int, role: str = "member") -> ConversationMember:
        req = _validated(AddMemberRequest, {"user_id": user_id, "role": role})
        data = await self._request("POST", f"/conversations/{conversation_id}/members", json=req.model_dump())
        return ConversationMember.model_validate(data["member"])

    async def remove_member(self, conversation_id: int, user_id: int) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}/members/{user_id}")

    async def update_membership(self, conversation_id: int, **fields) -> ConversationMember:
        req = _validated(UpdateMembershipRequest, fields)
        body = req.model_dump(mode="json", include=req.model_fields_set)
        data = await self._request("PATCH", f"/conversations/{conversation_id}/membership", json=body)
        return ConversationMember.model_validate(data["membership"])

    async def mark_read(self, conversation_id: int, last_read_message_id: int) -> ConversationMember:
        body = {"last_read_message_id": last_read_message_id}
        data = await self._request("POST", f"/conversations/{conversation_id}/read", json=body)
        return ConversationMember.model_validate(data["membership"])

    # ---- messages -----------------------------------------------------------

    async def list_messages(self, conversation_id: int, limit: int = 50, cursor: Optional[int] = None) -> MessagePage:
        params: Dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._request("GET", f"/conversations/{conversation_id}/messages", params=params)
        return MessagePage.model_validate(data)

    async def send_message(
        self,
        conversation_id: int,
        body: str = "",
        attachments: Optional[List[Union[AttachmentInput, Dict[str, Any]]]] = None,
        references: Optional[List[Union[ReferenceInput, Dict[str, Any]]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        is_sensitive: bool = False,
    ) -> SendMessageResult:
        req = _validated(SendMessageRequest, {
            "body": body,
            "attachments": attachments or [],
            "references": references or [],
            "metadata": metadata or {},
            "is_sensitive": is_sensitive,
        })
        data = await self._request("POST", f"/conversations/{conversation_id}/messages", json=req.model_dump(mode="json"))
        return SendMessageResult.model_validate(data)

    async def update_message(self, message_id: int, body: str) -> Message:
        if not body.strip():
            raise ValidationError("Message body cannot be empty")
        data = await self._request("PATCH", f"/messages/{message_id}", json={"body": body})
        return Message.model_validate(data["message"])

    async def delete_message(self, message_id: int) -> None:
        await self._request("DELETE", f"/messages/{message_id}")

    async def add_reaction(self, message_id: int, emoji: str) -> MessageReaction:
        if not emoji.strip():
            raise ValidationError("Emoji is required")
        data = await self._request("POST", f"/messages/{message_id}/reactions", json={"emoji": emoji.strip()})
        return MessageReaction.model_validate(data["reaction"])

    async def remove_reaction(self, message_id: int, emoji: str) -> None:
        if not emoji.strip():
            raise ValidationError("Emoji is required")
        await self._request("DELETE", f"/messages/{message_id}/reactions/{quote(emoji.strip(), safe='')}")

    async def search_messages(self, **filters) -> SearchResult:
        req = _validated(MessageSearchRequest, filters)
        data = await self._request("POST", "/messages/search", json=req.model_dump(mode="json", exclude_none=True))
        return SearchResult.model_validate(data)

    async def reveal_sensitive(self, message_id: int) -> RevealedMessage:
        data = await self._request("POST", f"/messages/{message_id}/reveal-sensitive")
        return RevealedMessage.model_validate(data)

    # ---- suggestions --------------------------------------------------------

    async def list_suggestions(self, message_id: int) -> List[MessageSuggestion]:
        data = await self._request("GET", f"/messages/{message_id}/suggestions")
        return [MessageSuggestion.model_validate(s) for s in data.get("suggestions", [])]

    async def accept_suggestion(
        self, message_id: int, suggestion_id: int, payload: Optional[Dict[str, Any]] = None
    ) -> SuggestionDecision:
        req = _validated(AcceptSuggestionRequest, payload or {})
        url = f"/messages/{message_id}/suggestions/{suggestion_id}/accept"
        data = await self._request("POST", url, json=req.model_dump(mode="json", exclude_none=True))
        return SuggestionDecision.model_validate(data)

    async def dismiss_suggestion(self, message_id: int, suggestion_id: int) -> SuggestionDecision:
        data = await self._request("POST", f"/messages/{message_id}/suggestions/{suggestion_id}/dismiss")
        return SuggestionDecision.model_validate(data)

    # ---- password vault -----------------------------------------------------

    async def list_vault_items(self) -> List[VaultItem]:
        data = await self._request("GET", "/password-vault/items")
        return [VaultItem.model_validate(i) for i in data.get("items", [])]

    async def create_vault_item(
        self,
        label: str,
        secret: str,
        notes: str = "",
        source_message_id: Optional[int] = None,
        allow_reveal: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> VaultItem:
        req = _validated(CreateVaultItemRequest, {
            "label": label,
            "secret": secret,
            "notes": notes,
            "source_message_id": source_message_id,
            "allow_reveal": allow_reveal,
            "expires_at": expires_at,
        })
        data = await self._request("POST", "/password-vault/items", json=req.model_dump(mode="json"))
        return VaultItem.model_validate(data["item"])

    async def share_vault_item(
        self,
        item_id: int,
        target_conversation_id: int,
        expires_at: Optional[datetime] = None,
        allow_reveal: Optional[bool] = None,
    ) -> VaultItem:
        fields: Dict[str, Any] = {"target_conversation_id": target_conversation_id}
        if expires_at is not None:
            fields["expires_at"] = expires_at
        if allow_reveal is not None:
            fields["allow_reveal"] = allow_reveal
        req = _validated(ShareVaultItemRequest, fields)
        body = req.model_dump(mode="json", include=req.model_fields_set)
        data = await self._request("POST", f"/password-vault/items/{item_id}/share", json=body)
        return VaultItem.model_validate(data["item"])

    async def unshare_vault_item(self, item_id: int, target_conversation_id: Optional[int] = None) -> VaultItem:
        body = {"target_conversation_id": target_conversation_id} if target_conversation_id else {}
        data = await self._request("POST", f"/password-vault/items/{item_id}/unshare", json=body)
        return VaultItem.model_validate(data["item"])

    async def reveal_vault_item(self, item_id: int) -> VaultSecret:
        data = await self._request("POST", f"/password-vault/items/{item_id}/reveal")
        return VaultSecret.model_validate(data)

    # ---- presence, devices, files -------------------------------------------

    async def presence(self, user_id: int) -> bool:
        data = await self._request("GET", f"/presence/{user_id}")
        return bool(data.get("online"))

    async def register_device(self, platform: str, token: str) -> Dict[str, Any]:
        req = _validated(RegisterDeviceRequest, {"platform": platform, "token": token})
        return await self._request("POST", "/devices/register", json=req.model_dump())

    async def upload_file(
        self,
        content: Union[bytes, str, Path],
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> FileDescriptor:
        """Push a file to the file service and return the descriptor to attach to a message."""
        if not self._files_url:
            raise ValidationError("No file service configured")
        if isinstance(content, (str, Path)):
            path = Path(content)
            filename = filename or path.name
            content = path.read_bytes()
        filename = filename or "upload.bin"
        mime_type = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        files = {"file": (filename, content, mime_type)}
        data = await self._request("POST", f"{self._files_url}/upload", files=files)
        file_data = data.get("file", data)
        return FileDescriptor.model_validate({
            "id": file_data["id"],
            "original_name": file_data.get("original_name") or filename,
            "mime_type": file_data.get("mime_type") or mime_type,
        })
