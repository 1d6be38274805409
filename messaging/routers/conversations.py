from typing import Optional

from fastapi import APIRouter, Depends, Query

from messaging.schemas.messaging import (
    AddMemberRequest,
    CreateConversationRequest,
    MarkReadRequest,
    SendMessageRequest,
    UpdateConversationRequest,
    UpdateMembershipRequest,
)
from messaging.services.conversation_service import ConversationService
from messaging.services.message_service import MessageService
from messaging.utils.dependencies import get_conversation_service, get_current_user, get_message_service


router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("")
async def list_conversations(current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    items = await service.list_for_user(current_user["id"])
    return {"conversations": items}


@router.post("", status_code=201)
async def create_conversation(payload: CreateConversationRequest, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    conversation = await service.create(current_user["id"], payload)
    return {"conversation": conversation}


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: int, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    return await service.get_detail(current_user["id"], conversation_id)


@router.patch("/{conversation_id}")
async def update_conversation(conversation_id: int, payload: UpdateConversationRequest, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    conversation = await service.update(current_user["id"], conversation_id, payload)
    return {"conversation": conversation}


@router.post("/{conversation_id}/members", status_code=201)
async def add_member(conversation_id: int, payload: AddMemberRequest, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    member = await service.add_member(current_user["id"], conversation_id, payload)
    return {"member": member}


@router.delete("/{conversation_id}/members/{user_id}")
async def remove_member(conversation_id: int, user_id: int, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    await service.remove_member(current_user["id"], conversation_id, user_id)
    return {"message": "Member removed"}


@router.patch("/{conversation_id}/membership")
async def update_membership(conversation_id: int, payload: UpdateMembershipRequest, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    membership = await service.update_membership(current_user["id"], conversation_id, payload)
    return {"membership": membership}


@router.post("/{conversation_id}/read")
async def mark_read(conversation_id: int, payload: MarkReadRequest, current_user: dict = Depends(get_current_user), service: ConversationService = Depends(get_conversation_service)):
    membership = await service.mark_read(current_user["id"], conversation_id, payload.last_read_message_id)
    return {"membership": membership}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: int, limit: int = Query(50, ge=1, le=100), cursor: Optional[int] = Query(None, ge=1), current_user: dict = Depends(get_current_user), service: MessageService = Depends(get_message_service)):
    return await service.get_history(current_user["id"], conversation_id, limit=limit, cursor=cursor)


@router.post("/{conversation_id}/messages", status_code=201)
async def send_message(conversation_id: int, payload: SendMessageRequest, current_user: dict = Depends(get_current_user), service: MessageService = Depends(get_message_service)):
    return await service.send_message(current_user["id"], conversation_id, payload)
