from typing import Optional

from fastapi import APIRouter, Depends

from messaging.errors import ValidationError
from messaging.schemas.messaging import (
    AcceptSuggestionRequest,
    MessageSearchRequest,
    ReactionRequest,
    UpdateMessageRequest,
)
from messaging.services.message_service import MessageService
from messaging.services.reaction_service import ReactionService
from messaging.services.sensitive import SensitiveContentGate
from messaging.services.suggestion_service import SuggestionService
from messaging.utils.dependencies import (
    get_current_user,
    get_message_service,
    get_reaction_service,
    get_sensitive_gate,
    get_suggestion_service,
)


router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/search")
async def search_messages(payload: MessageSearchRequest, current_user: dict = Depends(get_current_user), service: MessageService = Depends(get_message_service)):
    return await service.search_messages(current_user["id"], payload)


@router.patch("/{message_id}")
async def update_message(message_id: int, payload: UpdateMessageRequest, current_user: dict = Depends(get_current_user), service: MessageService = Depends(get_message_service)):
    message = await service.update_message(current_user["id"], message_id, payload.body)
    return {"message": message}


@router.delete("/{message_id}")
async def delete_message(message_id: int, current_user: dict = Depends(get_current_user), service: MessageService = Depends(get_message_service)):
    await service.delete_message(current_user["id"], message_id)
    return {"message": "Message deleted"}


@router.post("/{message_id}/reactions", status_code=201)
async def add_reaction(message_id: int, payload: ReactionRequest, current_user: dict = Depends(get_current_user), service: ReactionService = Depends(get_reaction_service)):
    reaction = await service.add_reaction(current_user["id"], message_id, payload.emoji)
    return {"reaction": reaction}


@router.delete("/{message_id}/reactions/{emoji}")
async def remove_reaction(message_id: int, emoji: str, current_user: dict = Depends(get_current_user), service: ReactionService = Depends(get_reaction_service)):
    if not emoji.strip():
        raise ValidationError("Emoji is required")
    await service.remove_reaction(current_user["id"], message_id, emoji)
    return {"message": "Reaction removed"}


@router.get("/{message_id}/suggestions")
async def list_suggestions(message_id: int, current_user: dict = Depends(get_current_user), service: SuggestionService = Depends(get_suggestion_service)):
    suggestions = await service.list_suggestions(current_user["id"], message_id)
    return {"suggestions": suggestions}


@router.post("/{message_id}/suggestions/{suggestion_id}/accept")
async def accept_suggestion(message_id: int, suggestion_id: int, payload: Optional[AcceptSuggestionRequest] = None, current_user: dict = Depends(get_current_user), service: SuggestionService = Depends(get_suggestion_service)):
    return await service.accept(current_user["id"], message_id, suggestion_id, payload or AcceptSuggestionRequest())


@router.post("/{message_id}/suggestions/{suggestion_id}/dismiss")
async def dismiss_suggestion(message_id: int, suggestion_id: int, current_user: dict = Depends(get_current_user), service: SuggestionService = Depends(get_suggestion_service)):
    return await service.dismiss(current_user["id"], message_id, suggestion_id)


@router.post("/{message_id}/reveal-sensitive")
async def reveal_sensitive(message_id: int, current_user: dict = Depends(get_current_user), gate: SensitiveContentGate = Depends(get_sensitive_gate)):
    return await gate.reveal(current_user["id"], message_id)
